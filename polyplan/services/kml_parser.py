"""
KML/KMZ parcel import.

Reads the first polygon placemark of a KML or KMZ file and returns it as a
parcel boundary in (lat, lng) order. Interior rings (holes) are returned
separately so they can be submitted as exclusion zones.
"""
import io
import logging
import re
import zipfile
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import Any, Optional

from polyplan.services.exceptions import PlanningError
from polyplan.services.parcel import GeoPoint, LandParcel

logger = logging.getLogger(__name__)


class KMLParseError(PlanningError):
    """Raised when KML/KMZ parsing fails."""
    pass


@dataclass(frozen=True)
class ImportedParcel:
    """A parcel boundary read from a KML/KMZ file."""
    name: Optional[str]
    boundary: tuple[GeoPoint, ...]
    holes: tuple[tuple[GeoPoint, ...], ...] = field(default_factory=tuple)

    def to_parcel(self) -> LandParcel:
        return LandParcel.from_coordinates(self.boundary, name=self.name or "Land parcel")

    def to_dict(self) -> dict[str, Any]:
        """Request-ready layout: land_area plus one exclusion zone per hole."""
        return {
            "land_area": {
                "name": self.name or "Land parcel",
                "coordinates": [p.to_dict() for p in self.boundary],
            },
            "zones": [
                {
                    "kind": "exclusion",
                    "name": f"Interior ring {i + 1}",
                    "coordinates": [p.to_dict() for p in hole],
                }
                for i, hole in enumerate(self.holes)
            ],
        }


class KMLParser:
    """
    Parser for KML and KMZ files.

    Uses direct XML parsing for reliability across different KML versions.
    """

    ALLOWED_EXTENSIONS = {".kml", ".kmz"}
    MAX_FILE_SIZE = 10 * 1024 * 1024  # 10 MB

    # KML namespace
    KML_NS = {"kml": "http://www.opengis.net/kml/2.2"}

    @classmethod
    def parse(cls, content: bytes, filename: str) -> ImportedParcel:
        """
        Parse KML/KMZ file content and extract the first polygon boundary.

        Args:
            content: Raw file bytes
            filename: Original filename (used to determine file type)

        Returns:
            ImportedParcel with the placemark name (or None)

        Raises:
            KMLParseError: If parsing fails or no polygon is found
        """
        if len(content) > cls.MAX_FILE_SIZE:
            raise KMLParseError(f"File exceeds maximum size of {cls.MAX_FILE_SIZE // (1024*1024)}MB")

        ext = cls._get_extension(filename)
        if ext not in cls.ALLOWED_EXTENSIONS:
            raise KMLParseError(f"Invalid file type. Allowed: {', '.join(sorted(cls.ALLOWED_EXTENSIONS))}")

        kml_content = cls._extract_kmz(content) if ext == ".kmz" else content
        parcel = cls._parse_kml(kml_content)
        logger.info(
            f"Imported parcel {parcel.name!r} from {filename}: "
            f"{len(parcel.boundary)} vertices, {len(parcel.holes)} hole(s)"
        )
        return parcel

    @classmethod
    def _get_extension(cls, filename: str) -> str:
        """Get lowercase file extension."""
        return "." + filename.rsplit(".", 1)[-1].lower() if "." in filename else ""

    @classmethod
    def _extract_kmz(cls, content: bytes) -> bytes:
        """
        Extract KML from KMZ (ZIP) archive.

        KMZ files are ZIP archives containing a doc.kml file (or similar).
        """
        try:
            with zipfile.ZipFile(io.BytesIO(content), "r") as zf:
                kml_files = [n for n in zf.namelist() if n.lower().endswith(".kml")]
                if not kml_files:
                    raise KMLParseError("No KML file found in KMZ archive")

                # Prefer doc.kml if present, otherwise use first KML file
                main_kml = next(
                    (f for f in kml_files if f.lower() == "doc.kml"),
                    kml_files[0]
                )
                return zf.read(main_kml)
        except zipfile.BadZipFile:
            raise KMLParseError("Invalid KMZ file: not a valid ZIP archive")

    @staticmethod
    def _find(elem, path: str, ns: dict):
        """Find with the KML namespace, falling back to un-namespaced tags."""
        found = elem.find(path, ns)
        if found is None:
            found = elem.find(path.replace("kml:", ""))
        return found

    @staticmethod
    def _findall(elem, path: str, ns: dict) -> list:
        found = elem.findall(path, ns)
        if not found:
            found = elem.findall(path.replace("kml:", ""))
        return found

    @classmethod
    def _parse_kml(cls, content: bytes) -> ImportedParcel:
        try:
            root = ET.fromstring(content)
        except ET.ParseError as e:
            raise KMLParseError(f"Invalid XML: {e}")

        # KML files typically carry a namespace on the root tag
        ns_match = re.match(r'\{(.+?)\}', root.tag)
        ns = {"kml": ns_match.group(1)} if ns_match else cls.KML_NS

        for placemark in cls._findall(root, ".//kml:Placemark", ns):
            name_elem = cls._find(placemark, "kml:name", ns)
            name = name_elem.text.strip() if name_elem is not None and name_elem.text else None

            polygon_elem = cls._find(placemark, ".//kml:Polygon", ns)
            if polygon_elem is None:
                continue

            outer = cls._find(polygon_elem, ".//kml:outerBoundaryIs//kml:coordinates", ns)
            if outer is None or not outer.text:
                continue
            boundary = cls._parse_coordinates(outer.text)
            if len(set(boundary)) < 3:
                continue

            holes = []
            for inner in cls._findall(polygon_elem, ".//kml:innerBoundaryIs//kml:coordinates", ns):
                if inner.text:
                    ring = cls._parse_coordinates(inner.text)
                    if len(set(ring)) >= 3:
                        holes.append(tuple(ring))

            return ImportedParcel(name=name, boundary=tuple(boundary), holes=tuple(holes))

        raise KMLParseError("No polygon geometry found in KML file")

    @classmethod
    def _parse_coordinates(cls, coord_text: str) -> list[GeoPoint]:
        """
        Parse a KML coordinate string into GeoPoints.

        KML format: "lon,lat,alt lon,lat,alt ..."
        """
        coords = []
        for coord_str in coord_text.strip().split():
            parts = coord_str.strip().split(",")
            if len(parts) >= 2:
                try:
                    coords.append(GeoPoint(lat=float(parts[1]), lng=float(parts[0])))
                except ValueError:
                    continue
        return coords
