import logging
import shutil
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional, Union

import coloredlogs
import requests
import yaml

logger = logging.getLogger(__name__)


def parse_yaml(filename):
    with open(filename, "r") as stream:
        config = yaml.safe_load(stream)
    return config


def config_logger(level="INFO"):
    # Colours selected from here:
    # http://humanfriendly.readthedocs.io/en/latest/_images/ansi-demo.png
    coloredlogs.install(
        level=level,
        fmt="%(asctime)s %(name)s %(levelname)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        field_styles={
            "name": {"color": 8},
            "asctime": {"color": 248},
            "levelname": {"color": 8, "bold": True},
        },
    )


def download_url(url, save_path, chunk_size=128):
    # Remove file if already exists
    Path(save_path).unlink(missing_ok=True)
    logger.debug(f'Downloading to "{save_path}"')
    with requests.get(url, stream=True) as r:
        r.raise_for_status()
        with open(save_path, "wb") as fd:
            for chunk in r.iter_content(chunk_size=chunk_size):
                fd.write(chunk)
    return Path(save_path)


def clear_directory(directory: Union[str, Path]):
    """
    Remove everything inside `directory` but keep the directory
    itself. Destructive: any file or subfolder in there is deleted.
    :param directory: folder to empty, created if it doesn't exist
    """
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    for path in directory.iterdir():
        if path.is_dir() and not path.is_symlink():
            shutil.rmtree(path)
        else:
            path.unlink()
    logger.debug(f"Cleared {directory}")


@contextmanager
def scratch_directory(
    work_dir: Optional[Union[str, Path]] = None
) -> Iterator[Path]:
    """
    Scratch folder that is empty on entry and emptied again on exit,
    also when the body raises.
    If no `work_dir` is given a new temporary directory is created
    and removed afterwards. If a `work_dir` is given, its contents
    are wiped before and after use.
    :param work_dir: optional folder to use as scratch area
    """
    if work_dir is None:
        with tempfile.TemporaryDirectory() as tmp_dir:
            yield Path(tmp_dir)
        return
    work_dir = Path(work_dir)
    clear_directory(work_dir)
    try:
        yield work_dir
    finally:
        clear_directory(work_dir)
