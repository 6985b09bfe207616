"""
Digital elevation model access and sampling.

A DEM is a north-up raster in geographic coordinates:
    col = (lon - origin_lon) / res_lon
    row = (lat - origin_lat) / res_lat      (res_lat < 0, rows grow southward)

The origin is the top-left corner of the raster as given by the GeoTIFF
tie point. Samples are bilinear over the 2x2 neighbourhood
    z00 = (r0, c0)     z10 = (r0, c0+1)
    z01 = (r0+1, c0)   z11 = (r0+1, c0+1)
with an explicit policy for windows that contain no-data cells.

Raster reads go through a windowed accessor
    accessor(col_start, row_start, col_end, row_end) -> values (row-major)
and are bounded by a timeout and a retry count.
"""

import math
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass
from typing import Callable, Optional

import numpy as np
import rasterio
from rasterio.windows import Window
from pyproj import CRS

from .intersect import FailureKind

logger = logging.getLogger(__name__)

RasterAccessor = Callable[[int, int, int, int], np.ndarray]


class ArrayRasterAccessor:
    """Windowed reads from an in-memory elevation array."""

    def __init__(self, data):
        self.data = np.asarray(data, dtype=np.float64)

    def __call__(self, col_start: int, row_start: int, col_end: int, row_end: int) -> np.ndarray:
        return self.data[row_start:row_end, col_start:col_end].ravel()


class RasterioWindowAccessor:
    """Windowed reads from an open rasterio dataset."""

    def __init__(self, dataset, band: int = 1):
        self.dataset = dataset
        self.band = band

    def __call__(self, col_start: int, row_start: int, col_end: int, row_end: int) -> np.ndarray:
        window = Window(col_start, row_start, col_end - col_start, row_end - row_start)
        return self.dataset.read(self.band, window=window).astype(np.float64).ravel()

    def close(self) -> None:
        self.dataset.close()


@dataclass(frozen=True)
class DigitalElevationModel:
    """
    Geographic elevation raster.

    Attributes:
        width: Raster width in pixels
        height: Raster height in pixels
        origin_lon: Longitude of the top-left corner (degrees)
        origin_lat: Latitude of the top-left corner (degrees)
        res_lon: Pixel size in longitude (degrees, > 0)
        res_lat: Pixel size in latitude (degrees, < 0 for north-up)
        nodata: Sentinel for unknown elevation, or None
        coordinate_reference_is_geographic: False refuses all sampling
        raster_accessor: Windowed read function
    """
    width: int
    height: int
    origin_lon: float
    origin_lat: float
    res_lon: float
    res_lat: float
    nodata: Optional[float]
    coordinate_reference_is_geographic: bool
    raster_accessor: RasterAccessor
    name: str = ""

    def __post_init__(self):
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"DEM size must be positive, got {self.width}x{self.height}")
        if not self.res_lon > 0:
            raise ValueError(f"DEM longitude resolution must be positive, got {self.res_lon}")
        if not self.res_lat < 0:
            raise ValueError(
                f"DEM latitude resolution must be negative (north-up), got {self.res_lat}"
            )

    @classmethod
    def from_array(
        cls,
        data,
        origin_lon: float,
        origin_lat: float,
        res_lon: float,
        res_lat: float,
        nodata: Optional[float] = None,
        geographic: bool = True,
        name: str = "",
    ) -> "DigitalElevationModel":
        """Wrap a 2D elevation array (row 0 = northernmost)."""
        accessor = ArrayRasterAccessor(data)
        height, width = accessor.data.shape
        return cls(
            width=width,
            height=height,
            origin_lon=origin_lon,
            origin_lat=origin_lat,
            res_lon=res_lon,
            res_lat=-abs(res_lat),
            nodata=nodata,
            coordinate_reference_is_geographic=geographic,
            raster_accessor=accessor,
            name=name,
        )

    def lat_lon_to_rc(self, lat: float, lon: float):
        """Fractional (row, col) of a geographic point."""
        col = (lon - self.origin_lon) / self.res_lon
        row = (lat - self.origin_lat) / self.res_lat
        return row, col

    def rc_to_lat_lon(self, row: float, col: float):
        return self.origin_lat + row * self.res_lat, self.origin_lon + col * self.res_lon

    def read_window(self, col_start: int, row_start: int, col_end: int, row_end: int) -> np.ndarray:
        return np.asarray(
            self.raster_accessor(col_start, row_start, col_end, row_end), dtype=np.float64
        )

    def summary(self) -> str:
        nodata = self.nodata if self.nodata is not None else "n/a"
        crs = "geographic" if self.coordinate_reference_is_geographic else "unknown"
        return (
            f"DEM {self.name}: size={self.width}x{self.height} "
            f"origin(lon,lat)=({self.origin_lon:.6f}, {self.origin_lat:.6f}) "
            f"res(deg)=({self.res_lon}, {self.res_lat}) CRS={crs} noData={nodata}"
        )

    def close(self) -> None:
        close = getattr(self.raster_accessor, "close", None)
        if close is not None:
            close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
        return False


# Corner offsets (dx, dy) of z00, z10, z01, z11
_CORNERS = ((0.0, 0.0), (1.0, 0.0), (0.0, 1.0), (1.0, 1.0))


class NoDataPolicy:
    """Fallback used when some cells of the 2x2 window are invalid."""

    name = "base"

    def fill(self, values: np.ndarray, valid: np.ndarray, dx: float, dy: float) -> Optional[float]:
        raise NotImplementedError


class NearestValidNeighbor(NoDataPolicy):
    """First valid cell in z00, z10, z01, z11 order."""

    name = "nearest"

    def fill(self, values, valid, dx, dy):
        for z, ok in zip(values, valid):
            if ok:
                return float(z)
        return None


class InverseDistanceWeighted(NoDataPolicy):
    """Inverse-distance weighting of the valid cells."""

    name = "idw"

    def __init__(self, power: float = 2.0):
        self.power = power

    def fill(self, values, valid, dx, dy):
        num = 0.0
        den = 0.0
        for z, ok, (cx, cy) in zip(values, valid, _CORNERS):
            if not ok:
                continue
            d = math.hypot(dx - cx, dy - cy)
            if d == 0:
                return float(z)
            w = 1.0 / d ** self.power
            num += w * z
            den += w
        if den == 0:
            return None
        return num / den


NODATA_POLICIES = {
    NearestValidNeighbor.name: NearestValidNeighbor,
    InverseDistanceWeighted.name: InverseDistanceWeighted,
}


def make_nodata_policy(name: str) -> NoDataPolicy:
    try:
        return NODATA_POLICIES[name.lower()]()
    except KeyError:
        raise ValueError(
            f"Unknown no-data policy '{name}', expected one of {sorted(NODATA_POLICIES)}"
        ) from None


@dataclass(frozen=True)
class DEMSample:
    """Outcome of a DEM sample: an elevation or the reason there is none."""
    elevation: Optional[float]
    failure: Optional[FailureKind] = None

    @property
    def ok(self) -> bool:
        return self.elevation is not None


def bilinear(z00: float, z10: float, z01: float, z11: float, dx: float, dy: float) -> float:
    z0 = z00 * (1 - dx) + z10 * dx
    z1 = z01 * (1 - dx) + z11 * dx
    return z0 * (1 - dy) + z1 * dy


class DEMSampler:
    """
    Bilinear elevation sampler over a DigitalElevationModel.

    Example usage:
        dem = load_dem("srtm.tif")
        with DEMSampler(dem, vertical_offset_m=20.0) as sampler:
            z = sampler.sample_elevation(40.0, 44.5)
    """

    def __init__(
        self,
        dem: DigitalElevationModel,
        policy: Optional[NoDataPolicy] = None,
        vertical_offset_m: float = 0.0,
        read_timeout_s: Optional[float] = 5.0,
        read_retries: int = 2,
    ):
        """
        Args:
            dem: Elevation model to sample
            policy: No-data fallback (NearestValidNeighbor by default)
            vertical_offset_m: Datum offset added to every successful sample
            read_timeout_s: Timeout for a single window read (None waits forever)
            read_retries: Additional attempts after a timed-out read
        """
        self.dem = dem
        self.policy = policy if policy is not None else NearestValidNeighbor()
        self.vertical_offset_m = vertical_offset_m
        self.read_timeout_s = read_timeout_s
        self.read_retries = max(0, read_retries)
        self._executor: Optional[ThreadPoolExecutor] = None
        self._lock = threading.Lock()

        if not dem.coordinate_reference_is_geographic:
            logger.warning(f"{dem.summary()} is not geographic; sampling will be refused")

    def _submit(self, c0: int, r0: int):
        with self._lock:
            if self._executor is None:
                # One worker keeps reads on a dataset handle serialized
                self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="dem-read")
            executor = self._executor
            return executor, executor.submit(self.dem.read_window, c0, r0, c0 + 2, r0 + 2)

    def _discard_executor(self, executor: ThreadPoolExecutor) -> None:
        """Drop an executor whose worker is stuck in a read."""
        with self._lock:
            if self._executor is executor:
                self._executor = None
        executor.shutdown(wait=False)

    def _read_window(self, c0: int, r0: int) -> Optional[np.ndarray]:
        if self.read_timeout_s is None:
            return self.dem.read_window(c0, r0, c0 + 2, r0 + 2)

        for attempt in range(self.read_retries + 1):
            executor, future = self._submit(c0, r0)
            try:
                return future.result(timeout=self.read_timeout_s)
            except FutureTimeout:
                future.cancel()
                logger.warning(
                    f"DEM window read at (row={r0}, col={c0}) timed out after "
                    f"{self.read_timeout_s}s (attempt {attempt + 1}/{self.read_retries + 1})"
                )
                # A running read cannot be cancelled; later reads get a fresh worker
                self._discard_executor(executor)
        return None

    def is_valid(self, z: float) -> bool:
        if not math.isfinite(z):
            return False
        return self.dem.nodata is None or z != self.dem.nodata

    def sample(self, lat: float, lon: float) -> DEMSample:
        """
        Sample the DEM at a geographic point.

        Args:
            lat: Latitude in degrees
            lon: Longitude in degrees

        Returns:
            DEMSample with the elevation (meters, offset applied) or the
            failure kind
        """
        dem = self.dem
        if not dem.coordinate_reference_is_geographic:
            return DEMSample(None, FailureKind.DEM_WRONG_CRS)

        row, col = dem.lat_lon_to_rc(lat, lon)
        if not (math.isfinite(row) and math.isfinite(col)):
            return DEMSample(None, FailureKind.DEM_OUT_OF_BOUNDS)

        r0, c0 = math.floor(row), math.floor(col)
        if r0 < 0 or r0 >= dem.height - 1 or c0 < 0 or c0 >= dem.width - 1:
            return DEMSample(None, FailureKind.DEM_OUT_OF_BOUNDS)

        values = self._read_window(c0, r0)
        if values is None or len(values) < 4:
            return DEMSample(None, FailureKind.DEM_NO_DATA)

        values = values[:4]
        valid = np.array([self.is_valid(z) for z in values])
        dx, dy = col - c0, row - r0

        if valid.all():
            z = bilinear(*values, dx, dy)
        else:
            z = self.policy.fill(values, valid, dx, dy)
            if z is None:
                return DEMSample(None, FailureKind.DEM_NO_DATA)
            logger.debug(f"Partial no-data window at ({lat:.6f}, {lon:.6f}); used {self.policy.name}")

        return DEMSample(float(z) + self.vertical_offset_m)

    def sample_elevation(self, lat: float, lon: float) -> Optional[float]:
        """Elevation in meters at (lat, lon), or None."""
        return self.sample(lat, lon).elevation

    def close(self) -> None:
        with self._lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=False)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
        return False


def sample_elevation(dem: DigitalElevationModel, lat: float, lon: float) -> Optional[float]:
    """One-off bilinear sample with default settings and no read timeout."""
    return DEMSampler(dem, read_timeout_s=None).sample_elevation(lat, lon)


def _is_geographic(crs) -> bool:
    if crs is None:
        return False
    return CRS.from_user_input(crs.to_wkt()).is_geographic


def load_dem(path: str, band: int = 1, in_memory: bool = False) -> DigitalElevationModel:
    """
    Open a GeoTIFF elevation model.

    Args:
        path: Path to the GeoTIFF
        band: Raster band holding the elevations
        in_memory: Read the whole band now and close the file

    Returns:
        DigitalElevationModel; close() it when in_memory is False

    Raises:
        ValueError: If the raster has no usable north-up geotransform
    """
    src = rasterio.open(path)
    try:
        transform = src.transform
        if transform.is_identity:
            raise ValueError(f"DEM {path} has no geotransform (tie point / pixel scale); cannot geolocate")
        if transform.b != 0 or transform.d != 0:
            raise ValueError(f"DEM {path} is rotated; only north-up rasters are supported")

        geographic = _is_geographic(src.crs)
        nodata = src.nodata
        width, height = src.width, src.height

        if in_memory:
            accessor = ArrayRasterAccessor(src.read(band))
            src.close()
        else:
            accessor = RasterioWindowAccessor(src, band)
    except Exception:
        src.close()
        raise

    dem = DigitalElevationModel(
        width=width,
        height=height,
        origin_lon=transform.c,
        origin_lat=transform.f,
        res_lon=abs(transform.a),
        res_lat=-abs(transform.e),
        nodata=nodata,
        coordinate_reference_is_geographic=geographic,
        raster_accessor=accessor,
        name=str(path),
    )
    logger.info(f"DEM loaded: {dem.summary()}")
    return dem
