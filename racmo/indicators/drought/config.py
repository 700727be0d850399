import os
from pathlib import Path

from racmo.utils_general.utils import parse_yaml


class Config:
    # general directories
    RAW_DIR = "raw"
    PROCESSED_DIR = "processed"
    RACMO_DIR = "racmo"
    CONFIG_FILENAME = "racmo.yml"

    # KNMI Data Platform, open data API
    # https://dataplatform.knmi.nl/dataset/knmi23-droogtestatistiek-1-0
    API_URL = "https://api.dataplatform.knmi.nl/open-data/v1"
    DATASET_NAME = "knmi23_droogtestatistiek"
    DATASET_VERSION = "1.0"
    FILES_URL = (
        f"{API_URL}/datasets/{DATASET_NAME}/versions/{DATASET_VERSION}/files"
    )
    API_KEY_ENV = "KNMI_API_KEY"
    DATA_DIR_ENV = "RACMO_DATA_DIR"

    # listing defaults
    MAX_KEYS = 100000
    SORTING = "asc"

    # RACMO NetCDF layout
    VARIABLE = "precip"
    LONGITUDE = "lon"
    LATITUDE = "lat"
    TIME = "time"

    # the RACMO files are stored in geographic coordinates and are
    # reprojected to the Dutch national grid (Amersfoort / RD New)
    SOURCE_CRS = "EPSG:4326"
    TARGET_CRS = "EPSG:28992"

    DOWNLOAD_CHUNK_SIZE = 1024 * 1024

    def __init__(self):
        # get the absolute path to the root directory of the repo
        DIR_PATH = getattr(
            self,
            "DIR_PATH",
            Path(os.path.dirname(os.path.realpath(__file__))).parents[2],
        )
        self.DIR_PATH = DIR_PATH
        self.DATA_DIR = Path(os.getenv(self.DATA_DIR_ENV, "."))
        self._parameters = None

    def parameters(self, config_path=None):
        if self._parameters is None:
            if config_path is None:
                config_path = (
                    Path(self.DIR_PATH) / "config" / self.CONFIG_FILENAME
                )
            self._parameters = parse_yaml(config_path)
        return self._parameters

    @property
    def api_key(self):
        return os.getenv(self.API_KEY_ENV)

    @property
    def scratch_dir(self) -> Path:
        # wiped on every fetch, don't store anything else in here
        return self.DATA_DIR / self.RAW_DIR / self.RACMO_DIR / "scratch"

    @property
    def processed_dir(self) -> Path:
        return self.DATA_DIR / self.PROCESSED_DIR / self.RACMO_DIR
