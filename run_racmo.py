import argparse
import logging
import sys
from pathlib import Path

from racmo.indicators.drought import knmi_dataplatform
from racmo.indicators.drought.config import Config
from racmo.utils_general.raster_manipulation import write_layers
from racmo.utils_general.utils import config_logger

logger = logging.getLogger(__name__)


def parse_args():
    parser = argparse.ArgumentParser()
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=None,
        help="path to the yaml config, defaults to config/racmo.yml",
    )
    parser.add_argument(
        "-n",
        "--number",
        type=int,
        default=1,
        help="number of matching files to download",
    )
    parser.add_argument(
        "--list-only",
        action="store_true",
        help="only print the matching filenames",
    )
    parser.add_argument("--debug", action="store_true")
    return parser.parse_args()


def main(config_path=None, number=1, list_only=False):
    config = Config()
    parameters = config.parameters(config_path)
    api_key = config.api_key
    if not api_key:
        logger.error(
            "No API key found. Needs the environment variable"
            f" '{config.API_KEY_ENV}'"
        )
        return -1

    df = knmi_dataplatform.list_files(
        endpoint=config.FILES_URL,
        max_results=parameters.get("max_keys", config.MAX_KEYS),
        sort_order=parameters.get("sorting", config.SORTING),
        auth_token=api_key,
    )
    df = knmi_dataplatform.filter_filenames(
        df, parameters.get("filename_patterns", [])
    )
    if df.empty:
        logger.error("No files match the filename patterns")
        return -1
    filenames = df[knmi_dataplatform.FILENAME_COL].head(number).tolist()
    if list_only:
        print("\n".join(filenames))
        return 0

    variable = parameters.get("variable", config.VARIABLE)
    for filename in filenames:
        da = knmi_dataplatform.fetch_raster(
            filename,
            variable_id=variable,
            auth_token=api_key,
            endpoint=config.FILES_URL,
            work_dir=config.scratch_dir,
        )
        write_layers(
            da,
            config.processed_dir / Path(filename).stem,
            max_layers=parameters.get("max_layers"),
        )
    return 0


if __name__ == "__main__":
    args = parse_args()
    config_logger(level="DEBUG" if args.debug else "INFO")
    sys.exit(main(args.config, number=args.number, list_only=args.list_only))
