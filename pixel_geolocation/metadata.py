"""
Normalization of photo metadata into pose and intrinsics hints.

Tag extraction (EXIF/XMP/maker notes) happens elsewhere; this module takes
the resulting flat tag dictionary and interprets the vendor-specific keys.

Yaw handling:
    DJI and Sony report compass headings (clockwise from North). The
    orientation composer rotates counter-clockwise about Up, so those
    headings are mirrored: yaw = (360 - (heading mod 360)) mod 360.
"""

import math
import re
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Optional

from .config import IntrinsicsHints
from .transforms import CameraPose

logger = logging.getLogger(__name__)

LAT_KEYS = ["GPSLatitude", "latitude"]
LON_KEYS = ["GPSLongitude", "longitude"]
ALTITUDE_KEYS = ["GPSAltitude", "AbsoluteAltitude"]
RELATIVE_ALTITUDE_KEYS = ["RelativeAltitude"]
YAW_KEYS = ["GimbalYawDegree", "FlightYawDegree", "CameraYaw", "Yaw"]
PITCH_KEYS = ["GimbalPitchDegree", "FlightPitchDegree", "CameraPitch", "Pitch"]
ROLL_KEYS = ["GimbalRollDegree", "FlightRollDegree", "CameraRoll", "Roll"]
COMPASS_YAW_MAKERS = ("DJI", "SONY")

_NUMBER_RE = re.compile(r"-?\d+(?:\.\d+)?")
_DMS_RE = re.compile(
    r"(-?\d+(?:\.\d+)?)\s*(?:deg|°)?\s*(\d+(?:\.\d+)?)?\s*(?:'|m)?\s*"
    r"(\d+(?:\.\d+)?)?\s*(?:\"|s)?\s*([NSEW])?",
    re.IGNORECASE,
)
_USER_COMMENT_RE = re.compile(r"(Lat|Lon|Pitch|Roll|Yaw)\s*=\s*(-?\d+(?:\.\d+)?)", re.IGNORECASE)


def number_from_mixed(value: Any) -> Optional[float]:
    """First number in a value such as 12.5, "+12.50" or "12.5 m"."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    if isinstance(value, str):
        m = _NUMBER_RE.search(value)
        if m:
            return float(m.group(0))
    return None


def _signed(degrees: float, minutes: float, seconds: float, ref: Optional[str]) -> float:
    dec = abs(degrees) + minutes / 60 + seconds / 3600
    if ref and ref.upper() in ("S", "W"):
        return -dec
    if not ref and degrees < 0:
        return -dec
    return dec


def parse_dms_string(text: str, ref: Optional[str] = None) -> Optional[float]:
    """
    Parse strings like 40 deg 12' 30.5" N into decimal degrees.

    A hemisphere letter inside the string wins over the separate ref.
    """
    m = _DMS_RE.search(text)
    if not m:
        return None
    D = float(m.group(1))
    M = float(m.group(2)) if m.group(2) else 0.0
    S = float(m.group(3)) if m.group(3) else 0.0
    return _signed(D, M, S, m.group(4) or ref)


def to_decimal_degrees(value: Any, ref: Optional[str] = None) -> Optional[float]:
    """
    Convert a GPS coordinate in any common metadata form to decimal degrees.

    Accepts decimal numbers, [D, M, S] sequences, DMS strings and
    "D, M, S" strings. The hemisphere ref (N/S/E/W) sets the sign.
    """
    if isinstance(value, (list, tuple)) and len(value) >= 3:
        try:
            D, M, S = (float(x) for x in value[:3])
        except (TypeError, ValueError):
            return None
        if all(math.isfinite(x) for x in (D, M, S)):
            return _signed(D, M, S, ref)
        return None

    if isinstance(value, str):
        if "," in value:
            try:
                parts = [float(p.strip()) for p in value.split(",")]
            except ValueError:
                parts = []
            if len(parts) >= 3:
                return _signed(parts[0], parts[1], parts[2], ref)
        dms = parse_dms_string(value, ref)
        if dms is not None:
            return dms

    n = number_from_mixed(value)
    if n is not None and ref and ref.upper() in ("S", "W"):
        return -abs(n)
    return n


def pick_first(
    meta: Dict[str, Any],
    keys: Iterable[str],
    convert: Callable[[Any], Optional[float]] = number_from_mixed,
) -> Optional[float]:
    """Converted value of the first key present and convertible."""
    for key in keys:
        if key in meta:
            out = convert(meta[key])
            if out is not None and not (isinstance(out, float) and math.isnan(out)):
                return out
    return None


def parse_user_comment(comment: Any) -> Dict[str, float]:
    """Key=value pose fields embedded in a free-text UserComment tag."""
    if not isinstance(comment, str):
        return {}
    return {k.lower(): float(v) for k, v in _USER_COMMENT_RE.findall(comment)}


def normalize_yaw(meta: Dict[str, Any], fallback: Optional[float] = None) -> Optional[float]:
    """
    Yaw in the orientation composer's convention, in [0, 360).

    Args:
        meta: Tag dictionary
        fallback: Raw yaw to use if no yaw tag is present

    Returns:
        Yaw in degrees, or None if unknown
    """
    raw = pick_first(meta, YAW_KEYS)
    if raw is None:
        raw = fallback
    if raw is None or not math.isfinite(raw):
        return None

    maker = str(meta.get("Make") or meta.get("make") or "").upper()
    if any(m in maker for m in COMPASS_YAW_MAKERS):
        return (360 - (raw % 360) + 360) % 360
    return raw % 360


@dataclass
class MetadataPose:
    """Pose fields found in metadata; None where the tag was absent."""
    lat: Optional[float] = None
    lon: Optional[float] = None
    altitude_amsl: Optional[float] = None
    relative_altitude: Optional[float] = None  # AGL reported by the drone
    yaw: Optional[float] = None
    pitch: Optional[float] = None
    roll: Optional[float] = None

    @property
    def has_gps(self) -> bool:
        return self.lat is not None and self.lon is not None

    def to_pose(self, base: Optional[CameraPose] = None) -> CameraPose:
        """
        Merge into a CameraPose, keeping base values for missing fields.

        Raises:
            ValueError: If neither the metadata nor base provide lat/lon
        """
        if base is None:
            if not self.has_gps:
                raise ValueError("Metadata has no GPS position and no base pose was given")
            base = CameraPose(lat=self.lat, lon=self.lon, altitude_amsl=0.0)

        def pick(value, default):
            return default if value is None else value

        return CameraPose(
            lat=pick(self.lat, base.lat),
            lon=pick(self.lon, base.lon),
            altitude_amsl=pick(self.altitude_amsl, base.altitude_amsl),
            yaw=pick(self.yaw, base.yaw),
            pitch=pick(self.pitch, base.pitch),
            roll=pick(self.roll, base.roll),
        )


def pose_from_metadata(meta: Dict[str, Any]) -> MetadataPose:
    """
    Extract pose fields from a tag dictionary.

    Args:
        meta: Flat dictionary of parsed EXIF/XMP tags

    Returns:
        MetadataPose with whatever could be read
    """
    lat_ref = meta.get("GPSLatitudeRef") or "N"
    lon_ref = meta.get("GPSLongitudeRef") or "E"

    comment = parse_user_comment(meta.get("UserComment"))

    lat = pick_first(meta, LAT_KEYS, lambda v: to_decimal_degrees(v, lat_ref))
    lon = pick_first(meta, LON_KEYS, lambda v: to_decimal_degrees(v, lon_ref))
    pitch = pick_first(meta, PITCH_KEYS)
    roll = pick_first(meta, ROLL_KEYS)

    pose = MetadataPose(
        lat=lat if lat is not None else comment.get("lat"),
        lon=lon if lon is not None else comment.get("lon"),
        altitude_amsl=pick_first(meta, ALTITUDE_KEYS),
        relative_altitude=pick_first(meta, RELATIVE_ALTITUDE_KEYS),
        yaw=normalize_yaw(meta, fallback=comment.get("yaw")),
        pitch=pitch if pitch is not None else comment.get("pitch"),
        roll=roll if roll is not None else comment.get("roll"),
    )
    if not pose.has_gps:
        logger.warning("Metadata has no usable GPS position")
    return pose


def intrinsics_hints_from_metadata(
    meta: Dict[str, Any], image_width: int, image_height: int
) -> IntrinsicsHints:
    """
    Intrinsics hints from lens and body tags.

    Args:
        meta: Flat dictionary of parsed EXIF/XMP tags
        image_width: Width of the sensor-oriented image in pixels
        image_height: Height of the sensor-oriented image in pixels

    Returns:
        IntrinsicsHints for intrinsics.resolve_intrinsics
    """
    return IntrinsicsHints(
        image_width=image_width,
        image_height=image_height,
        focal_length_mm=pick_first(meta, ["FocalLength"]),
        focal_length_35mm=pick_first(meta, ["FocalLengthIn35mmFormat", "FocalLengthIn35mmFilm"]),
        fov_deg=pick_first(meta, ["FOV", "FieldOfView"]),
        model=str(meta.get("Model") or "") or None,
    )
