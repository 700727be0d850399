import logging
from pathlib import Path
from typing import List, Optional, Sequence, Tuple, Union

import cftime
import numpy as np
import rioxarray  # noqa: F401
import xarray as xr
from rasterio.enums import Resampling

logger = logging.getLogger(__name__)

DATE_FORMAT = "%Y-%m-%d"
LAYER_COORD = "layer"


def invert_latlon(ds, lon_coord="lon", lat_coord="lat"):
    """
    This function checks for inversion of latitude and longitude
    and changes them if needed
    Some datasets come with flipped coordinates.
    For latitude this means that the coordinates start with the
    smallest number while for longitude they are flipped when starting
    with the largest number.
    Building a north-up raster from the data gives a mirrored image
    when these coordinates are flipped.
    Only one dimensional coordinates are checked, two dimensional
    (curvilinear) coordinates are returned unchanged.
    Function largely copied from
    https://github.com/perrygeo/python-rasterstats/issues/218
    Args:
        ds (xarray dataset or dataarray): data containing the
        coordinates
        lon_coord (str): name of the longitude coordinate
        lat_coord (str): name of the latitude coordinate

    Returns:
        ds (xarray dataset or dataarray): data with north up and
        longitude increasing
    """
    if ds[lat_coord].ndim == 1 and ds[lat_coord].size > 1:
        if ds[lat_coord][0].item() < ds[lat_coord][-1].item():
            logger.info(
                "Dataset was north down, latitude coordinates have been"
                " flipped"
            )
            ds = ds.isel({lat_coord: slice(None, None, -1)})
    if ds[lon_coord].ndim == 1 and ds[lon_coord].size > 1:
        if ds[lon_coord][0].item() > ds[lon_coord][-1].item():
            logger.info(
                "Dataset had inverted longitude, longitude coordinates have"
                " been flipped"
            )
            ds = ds.isel({lon_coord: slice(None, None, -1)})
    return ds


def fix_calendar(ds, timevar="time"):
    """
    Some datasets come with a wrong calendar attribute that isn't
    recognized by cftime, or with none at all
    So map this attribute to one that can be read
    Args:
        ds (xarray dataset): dataset of interest
        timevar (str): variable that contains the time in ds

    Returns:
        ds (xarray dataset): modified dataset
    """
    if "calendar" in ds[timevar].attrs.keys():
        if ds[timevar].attrs["calendar"] == "360":
            ds[timevar].attrs["calendar"] = "360_day"
    elif "units" in ds[timevar].attrs.keys():
        if "months since" in ds[timevar].attrs["units"]:
            ds[timevar].attrs["calendar"] = "360_day"
        else:
            # CF default when no calendar is given
            ds[timevar].attrs["calendar"] = "standard"
    return ds


def grid_extent(lon, lat) -> Tuple[float, float, float, float]:
    """
    Bounding extent (xmin, xmax, ymin, ymax) of the longitude and
    latitude values. Coordinates of any shape are accepted, but only
    the range is used, so the grid is assumed to be regular.
    """
    lon = np.asarray(lon)
    lat = np.asarray(lat)
    if lon.ndim != 1 or lat.ndim != 1:
        logger.warning(
            "Coordinates are not one dimensional, the raster is built"
            " from their bounding extent only"
        )
    return (
        float(np.nanmin(lon)),
        float(np.nanmax(lon)),
        float(np.nanmin(lat)),
        float(np.nanmax(lat)),
    )


def build_raster_stack(
    values: np.ndarray,
    extent: Tuple[float, float, float, float],
    crs: str,
    time_values: Optional[Sequence] = None,
) -> xr.DataArray:
    """
    Create a raster stack from a 3D array ordered as (time, row, column)
    with the first row being the northernmost one. The extent gives
    the outer edges of the grid, so the cell centres lie half a cell
    inside of it.
    :param values: array with the data
    :param extent: (xmin, xmax, ymin, ymax) of the grid
    :param crs: coordinate reference system of the extent
    :param time_values: values for the time coordinate. Defaults to the
    position of the layer
    :return: DataArray with dims (time, y, x) and the crs written to it
    """
    values = np.asarray(values, dtype="float64")
    if values.ndim != 3:
        raise ValueError(
            f"Expected an array with 3 dimensions (time, y, x), got"
            f" {values.ndim}"
        )
    n_time, n_y, n_x = values.shape
    if time_values is None:
        time_values = np.arange(n_time)
    xmin, xmax, ymin, ymax = extent
    x_res = (xmax - xmin) / n_x
    y_res = (ymax - ymin) / n_y
    da = xr.DataArray(
        values,
        dims=("time", "y", "x"),
        coords={
            "time": np.asarray(time_values),
            "y": ymax - y_res * (np.arange(n_y) + 0.5),
            "x": xmin + x_res * (np.arange(n_x) + 0.5),
        },
    )
    da.rio.write_crs(crs, inplace=True)
    return da


def reproject_stack(
    da: xr.DataArray,
    dst_crs: str,
    resampling: Resampling = Resampling.bilinear,
) -> xr.DataArray:
    """
    Reproject every layer of the stack to `dst_crs`.
    Cells outside of the source grid are set to NaN
    """
    logger.info(f"Reprojecting raster stack from {da.rio.crs} to {dst_crs}")
    return da.rio.reproject(dst_crs, resampling=resampling, nodata=np.nan)


def layer_dates(
    time_values, units: str, calendar: str = "standard"
) -> List[str]:
    """
    Convert CF time values into date strings, e.g. "2050-01-31".
    Non standard calendars such as 360_day are handled by cftime.
    :param time_values: numeric offsets as stored in the file
    :param units: CF units, e.g. "days since 2050-01-01"
    :param calendar: CF calendar name
    :return: list with a date string per time value, in the same order
    """
    dates = cftime.num2date(
        np.atleast_1d(np.asarray(time_values)), units=units, calendar=calendar
    )
    return [date.strftime(DATE_FORMAT) for date in dates]


def label_layers(
    da: xr.DataArray, prefix: str, dates: Sequence[str]
) -> xr.DataArray:
    """
    Name each layer of the stack `<prefix>_<date>`, keeping the order
    of the time dimension. The names are set as a `layer` coordinate
    and as the `long_name` attribute which rioxarray uses as band
    descriptions.
    """
    if len(dates) != da.sizes["time"]:
        raise ValueError(
            f"Got {len(dates)} dates for a stack with"
            f" {da.sizes['time']} layers"
        )
    names = [f"{prefix}_{date}" for date in dates]
    da = da.assign_coords({LAYER_COORD: ("time", names)})
    da.attrs["long_name"] = tuple(names)
    return da


def layer_names(da: xr.DataArray) -> List[str]:
    return [str(name) for name in da[LAYER_COORD].values]


def write_layers(
    da: xr.DataArray,
    output_dir: Union[str, Path],
    max_layers: Optional[int] = None,
) -> List[Path]:
    """
    Write layers of a labelled stack as separate GeoTIFF files, named
    after the layer.
    :param da: stack as returned by `label_layers`
    :param output_dir: directory to write to, created if needed
    :param max_layers: only write the first `max_layers` layers. If
    None, all layers are written
    :return: list with the paths of the written files
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    names = layer_names(da)
    if max_layers is not None:
        names = names[:max_layers]
    filepaths = []
    for i, name in enumerate(names):
        filepath = output_dir / f"{name}.tif"
        layer = da.isel(time=i).drop_vars(LAYER_COORD)
        layer = layer.assign_attrs(long_name=name)
        logger.debug(f"Writing {filepath}")
        layer.rio.to_raster(filepath)
        filepaths.append(filepath)
    logger.info(f"Wrote {len(filepaths)} layers to {output_dir}")
    return filepaths
