"""
Parcel import API endpoints.
"""
import logging
from typing import Annotated

from fastapi import APIRouter, File, HTTPException, UploadFile, status

from polyplan.api.dependencies import HTTP_422_UNPROCESSABLE
from polyplan.schemas.planning import ParsedParcelResponse
from polyplan.services.exceptions import InvalidParcelError
from polyplan.services.kml_parser import KMLParseError, KMLParser

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/parcels", tags=["Parcels"])


@router.post(
    "/parse-kml",
    response_model=ParsedParcelResponse,
    summary="Parse a parcel boundary",
    description="Upload a KML or KMZ file containing a parcel boundary polygon.",
)
async def parse_kml(
    file: Annotated[UploadFile, File(description="KML or KMZ file with parcel boundary")],
) -> ParsedParcelResponse:
    """
    Read the first polygon of a KML/KMZ file.

    The response can be submitted as-is to POST /api/planning; interior
    rings come back as exclusion zones.

    - **file**: KML or KMZ file (max 10MB)
    """
    if not file.filename:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Filename is required",
        )

    content = await file.read()
    if len(content) > KMLParser.MAX_FILE_SIZE:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"File too large. Maximum size is {KMLParser.MAX_FILE_SIZE // (1024*1024)}MB.",
        )

    try:
        imported = KMLParser.parse(content, file.filename)
        parcel = imported.to_parcel()
    except KMLParseError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        )
    except InvalidParcelError as e:
        raise HTTPException(
            status_code=HTTP_422_UNPROCESSABLE,
            detail=str(e),
        )

    data = imported.to_dict()
    if not imported.name:
        data["land_area"]["name"] = file.filename.rsplit(".", 1)[0]
    return ParsedParcelResponse(**data, area=parcel.area_m2)
