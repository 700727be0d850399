"""
List and download RACMO NetCDF files from the KNMI Data Platform and
convert them to raster stacks in the Dutch national grid, used for the
KNMI'23 drought statistics
"""
import logging
import numbers
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

import pandas as pd
import requests
import xarray as xr

from racmo.indicators.drought.config import Config
from racmo.utils_general.raster_manipulation import (
    build_raster_stack,
    fix_calendar,
    grid_extent,
    invert_latlon,
    label_layers,
    layer_dates,
    reproject_stack,
)
from racmo.utils_general.utils import download_url, scratch_directory

logger = logging.getLogger(__name__)

FILENAME_COL = "filename"


class DataPlatformError(Exception):
    pass


class RequestFailedError(DataPlatformError):
    def __init__(self, status_code: int, body: str):
        self.status_code = status_code
        self.body = body
        message = (
            f"Request failed with status: {status_code}\nResponse: {body}"
        )
        super().__init__(message)


class FileUrlRequestError(DataPlatformError):
    def __init__(self, filename: str, status_code: int):
        self.filename = filename
        self.status_code = status_code
        message = (
            f"Failed to get file URL for {filename} (status: {status_code})"
        )
        super().__init__(message)


class MalformedResponseError(DataPlatformError):
    def __init__(self, field_name: str, detail: str):
        self.field_name = field_name
        message = f"Malformed response, field '{field_name}': {detail}"
        super().__init__(message)


@dataclass
class FileListing:
    files: List[Dict[str, Any]]
    is_truncated: bool = False
    result_count: Optional[int] = None
    next_page_token: Optional[str] = None

    @classmethod
    def from_json(cls, content: Any) -> "FileListing":
        if not isinstance(content, dict):
            raise MalformedResponseError("files", "response is not an object")
        files = content.get("files")
        if not isinstance(files, list):
            raise MalformedResponseError("files", "missing or not a list")
        for i, record in enumerate(files):
            if not isinstance(record, dict) or not isinstance(
                record.get(FILENAME_COL), str
            ):
                raise MalformedResponseError(
                    FILENAME_COL, f"missing in file entry {i}"
                )
        return cls(
            files=files,
            is_truncated=bool(content.get("isTruncated", False)),
            result_count=content.get("resultCount"),
            next_page_token=content.get("nextPageToken"),
        )


@dataclass
class DownloadUrl:
    temporary_download_url: str

    @classmethod
    def from_json(cls, content: Any) -> "DownloadUrl":
        if not isinstance(content, dict):
            raise MalformedResponseError(
                "temporaryDownloadUrl", "response is not an object"
            )
        url = content.get("temporaryDownloadUrl")
        if not isinstance(url, str) or not url:
            raise MalformedResponseError(
                "temporaryDownloadUrl", "missing or empty"
            )
        return cls(temporary_download_url=url)


def _auth_header(auth_token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {auth_token}"}


def _parse_json(response: requests.Response, field_name: str) -> Any:
    try:
        return response.json()
    except ValueError as err:
        raise MalformedResponseError(
            field_name, f"invalid JSON ({err})"
        ) from err


def list_files(
    endpoint: str,
    max_results: int,
    sort_order: str,
    auth_token: str,
) -> pd.DataFrame:
    """
    Retrieve the list of files available in the dataset. Only a single
    page is requested, so if the dataset contains more than
    `max_results` files the remaining ones are not included
    :param endpoint: url of the files endpoint of the dataset
    :param max_results: maximum number of files to retrieve
    :param sort_order: sorting of the files, e.g. "asc" or "desc"
    :param auth_token: API key, sent as bearer token
    :return: dataframe with a row per file and a column per field
    returned by the API, e.g. filename, size, lastModified
    """
    if (
        isinstance(max_results, bool)
        or not isinstance(max_results, numbers.Integral)
        or max_results < 0
    ):
        raise ValueError(
            f"max_results should be a non-negative integer, got {max_results}"
        )
    params = {"maxKeys": str(max_results), "sorting": sort_order}
    logger.info(f"Retrieving file list from {endpoint}")
    logger.debug(f"Query parameters: {params}")
    response = requests.get(
        endpoint, headers=_auth_header(auth_token), params=params
    )
    if response.status_code != 200:
        raise RequestFailedError(response.status_code, response.text)

    listing = FileListing.from_json(_parse_json(response, "files"))
    logger.debug(
        f"Service reported {listing.result_count} results,"
        f" next page token: {listing.next_page_token}"
    )
    if listing.is_truncated:
        logger.warning(
            f"The file list was truncated at {max_results} files, increase"
            " max_results to retrieve all of them"
        )
    if listing.files:
        df = pd.DataFrame.from_records(listing.files)
    else:
        df = pd.DataFrame(columns=[FILENAME_COL])
    df = df.head(max_results).reset_index(drop=True)
    logger.info(f"Retrieved {len(df)} files")
    return df


def filter_filenames(
    df: pd.DataFrame, patterns: Sequence[str]
) -> pd.DataFrame:
    """
    Select the files whose name matches all of the regular expressions,
    e.g. [r"RACMO23\\.nc$", r"^optimalslice_2050Md"]
    :param df: dataframe as returned by `list_files`
    :param patterns: regular expressions the filename should match
    :return: the matching rows, in the original order
    """
    mask = pd.Series(True, index=df.index)
    for pattern in patterns:
        regex = re.compile(pattern)
        mask &= df[FILENAME_COL].map(lambda name: bool(regex.search(name)))
    return df[mask].reset_index(drop=True)


def _get_download_url(filename: str, auth_token: str, endpoint: str) -> str:
    file_url = f"{endpoint.rstrip('/')}/{filename}/url"
    logger.info(f"Requesting download url for {filename}")
    response = requests.get(file_url, headers=_auth_header(auth_token))
    if response.status_code != 200:
        raise FileUrlRequestError(filename, response.status_code)
    content = _parse_json(response, "temporaryDownloadUrl")
    return DownloadUrl.from_json(content).temporary_download_url


def _load_stack(
    filepath: Path,
    variable_id: str,
    lon_coord: str,
    lat_coord: str,
    time_coord: str,
) -> xr.DataArray:
    # decode the times ourselves, so non-standard calendars
    # are handled by cftime with the units in the file
    with xr.open_dataset(filepath, decode_times=False) as ds:
        ds = fix_calendar(ds, timevar=time_coord)
        da = ds[variable_id]
        # drop length one dimensions such as height, but keep a
        # single time step as one layer
        keep_dims = (
            {time_coord} | set(ds[lon_coord].dims) | set(ds[lat_coord].dims)
        )
        da = da.squeeze(
            [d for d in da.dims if d not in keep_dims and da.sizes[d] == 1],
            drop=True,
        )
        if ds[lon_coord].ndim == 1 and ds[lat_coord].ndim == 1:
            da = invert_latlon(da, lon_coord=lon_coord, lat_coord=lat_coord)
            da = da.transpose(time_coord, lat_coord, lon_coord)
        else:
            logger.warning(
                f"{lon_coord}/{lat_coord} are not 1-D, only their bounding"
                " extent is used"
            )
            da = da.transpose(time_coord, ...)
        values = da.values
        extent = grid_extent(ds[lon_coord].values, ds[lat_coord].values)
        time_attrs = dict(ds[time_coord].attrs)
        time_values = ds[time_coord].values
        dates = layer_dates(
            time_values,
            units=time_attrs["units"],
            calendar=time_attrs.get("calendar", "standard"),
        )

    logger.debug(f"Grid extent (xmin, xmax, ymin, ymax): {extent}")
    da_stack = build_raster_stack(
        values, extent=extent, crs=Config.SOURCE_CRS, time_values=time_values
    )
    da_stack = reproject_stack(da_stack, Config.TARGET_CRS)
    da_stack["time"].attrs.update(
        units=time_attrs["units"], calendar=time_attrs.get("calendar")
    )
    da_stack.name = variable_id
    return label_layers(da_stack, prefix=variable_id, dates=dates)


def fetch_raster(
    filename: str,
    variable_id: str,
    auth_token: str,
    endpoint: str,
    work_dir: Optional[Union[str, Path]] = None,
    lon_coord: str = Config.LONGITUDE,
    lat_coord: str = Config.LATITUDE,
    time_coord: str = Config.TIME,
    chunk_size: int = Config.DOWNLOAD_CHUNK_SIZE,
) -> xr.DataArray:
    """
    Download a NetCDF file from the dataset and convert one of its
    variables to a raster stack in the Dutch national grid, with a layer
    per time step named `<variable_id>_<YYYY-MM-DD>`.

    The file is downloaded to a scratch directory that is emptied
    before the download and after processing, also when an error
    occurs. WARNING: if `work_dir` is given, everything in it is
    deleted. If not given, a temporary directory is used.
    :param filename: name of the file in the dataset
    :param variable_id: name of the variable to extract
    :param auth_token: API key, sent as bearer token
    :param endpoint: url of the files endpoint of the dataset
    :param work_dir: optional scratch directory
    :param lon_coord: name of the longitude coordinate in the file
    :param lat_coord: name of the latitude coordinate in the file
    :param time_coord: name of the time coordinate in the file
    :param chunk_size: number of bytes to download at once
    :return: DataArray with dims (time, y, x) in EPSG:28992, with the
    layer names in the `layer` coordinate
    """
    with scratch_directory(work_dir) as scratch_dir:
        download_link = _get_download_url(filename, auth_token, endpoint)
        local_path = scratch_dir / filename
        logger.info(f"Downloading {filename}")
        download_url(download_link, local_path, chunk_size=chunk_size)
        da = _load_stack(
            local_path,
            variable_id=variable_id,
            lon_coord=lon_coord,
            lat_coord=lat_coord,
            time_coord=time_coord,
        )
    logger.info(f"Loaded {da.sizes['time']} layers of {variable_id}")
    return da
