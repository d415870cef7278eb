"""EXIF blocks written by the transform engine."""

from datetime import datetime
from typing import Optional

from PIL import Image

from .codec import GPS_IFD_TAG, ORIENTATION_TAG, RawImage
from .models import Action, ProcessOptions

SOFTWARE_TAG = 0x0131
DATETIME_TAG = 0x0132
ARTIST_TAG = 0x013B
COPYRIGHT_TAG = 0x8298


def exif_datetime(moment: datetime) -> str:
    return moment.strftime("%Y:%m:%d %H:%M:%S")


def orientation_only(orientation: Optional[int]) -> Image.Exif:
    """An EXIF block holding nothing but the orientation tag (empty if none)."""
    exif = Image.Exif()
    if orientation:
        exif[ORIENTATION_TAG] = orientation
    return exif


def authored_exif(
    orientation: Optional[int],
    copyright: Optional[str],
    author: Optional[str],
    software: str,
    moment: datetime,
) -> Image.Exif:
    exif = orientation_only(orientation)
    exif[COPYRIGHT_TAG] = copyright or ""
    exif[ARTIST_TAG] = author or ""
    exif[SOFTWARE_TAG] = software
    exif[DATETIME_TAG] = exif_datetime(moment)
    return exif


def remove_gps(exif: Image.Exif) -> Image.Exif:
    if GPS_IFD_TAG in exif:
        del exif[GPS_IFD_TAG]
    return exif


def build_output_exif(
    raw: RawImage,
    options: ProcessOptions,
    software: str,
    moment: Optional[datetime] = None,
) -> Image.Exif:
    """
    Build the EXIF block for the output image.

    strip and scramble keep only the orientation. add and update overwrite
    unconditionally with copyright, author, software and timestamp; nothing
    else from the source block survives. The author block is only written
    when a copyright or author is supplied.
    """
    if options.writes_metadata and (options.copyright or options.author):
        exif = authored_exif(
            raw.orientation,
            options.copyright,
            options.author,
            software,
            moment or datetime.now(),
        )
    else:
        exif = orientation_only(raw.orientation)

    if options.remove_gps and options.action != Action.STRIP:
        exif = remove_gps(exif)
    return exif
