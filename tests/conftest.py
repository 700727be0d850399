from os import environ, mkdir
from os.path import join, exists
from shutil import rmtree
from tempfile import gettempdir

import numpy as np
import pytest
import xarray as xr


TMP_PATH = join(gettempdir(), "test_racmo")


@pytest.fixture(scope="session", autouse=True)
def all_tests_initialise(request, session_mocker):
    if exists(TMP_PATH):
        rmtree(TMP_PATH)
    mkdir(TMP_PATH)
    session_mocker.patch.dict(environ, {"RACMO_DATA_DIR": TMP_PATH})
    yield
    if request.node.testsfailed == 0:
        rmtree(TMP_PATH)


def make_racmo_dataset(
    time_values=(0, 1, 2),
    units="days since 2050-01-01",
    calendar="standard",
    variable="precip",
    n_lon=20,
    n_lat=16,
    height=None,
):
    """
    Small dataset laid out like the RACMO files: (time, lat, lon) with
    latitude stored south to north and undecoded CF times
    """
    lon = np.linspace(3.6, 7.4, n_lon)
    lat = np.linspace(50.8, 53.8, n_lat)
    rs = np.random.RandomState(12345)
    data = rs.rand(len(time_values), n_lat, n_lon)
    time_attrs = {"units": units}
    if calendar is not None:
        time_attrs["calendar"] = calendar
    ds = xr.Dataset(
        data_vars={variable: (("time", "lat", "lon"), data)},
        coords={
            "time": ("time", np.asarray(time_values), time_attrs),
            "lat": lat,
            "lon": lon,
        },
    )
    if height is not None:
        # e.g. near-surface variables stored as (time, height, lat, lon)
        ds[variable] = ds[variable].expand_dims(height=[height], axis=1)
    return ds


@pytest.fixture
def racmo_netcdf_bytes(tmp_path):
    def _write(**kwargs):
        filepath = tmp_path / "source.nc"
        make_racmo_dataset(**kwargs).to_netcdf(filepath)
        return filepath.read_bytes()

    return _write
