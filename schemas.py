########################################
# schemas.py (공유 스키마)
########################################
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class ParseOptions(BaseModel):
    """EXIF 파싱 옵션. 모르는 키는 경계에서 버린다."""
    model_config = ConfigDict(extra="ignore")

    gps: bool = Field(True, description="Include GPS data")
    thumbnail: bool = Field(False, description="Include embedded thumbnail (IFD1) info")
    xmp: bool = Field(True, description="Include XMP data")
    icc: bool = Field(False, description="Include ICC color profile info")
    iptc: bool = Field(True, description="Include IPTC data")
    pick: Optional[List[str]] = Field(
        None,
        description="Only return these field names (latitude/longitude/altitude are always kept when gps is on)",
    )


class GpsCoordinates(BaseModel):
    latitude: float
    longitude: float
    altitude: Optional[float] = None


class MetadataRecord(BaseModel):
    date_time_original: Optional[datetime] = None
    create_date: Optional[datetime] = None
    make: Optional[str] = None
    model: Optional[str] = None
    lens_model: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    altitude: Optional[float] = None
    fields: Dict[str, Any] = Field(default_factory=dict)  # pass-through (JSON-safe)

    @property
    def captured_at(self) -> Optional[datetime]:
        return self.date_time_original or self.create_date

    @property
    def has_location(self) -> bool:
        return self.latitude is not None and self.longitude is not None


class BatchParseItem(BaseModel):
    filepath: str
    status: Literal["success", "no_exif", "error"]
    data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


class GpsLookupResult(BaseModel):
    filepath: str
    coordinates: Optional[GpsCoordinates] = None
    google_maps_url: Optional[str] = None
    message: Optional[str] = None


class RenameOutcome(BaseModel):
    original: str
    new: Optional[str] = None
    status: Literal["preview", "renamed", "error"]
    exif_found: bool = False
    error: Optional[str] = None


class RenameReport(BaseModel):
    dry_run: bool
    template: str
    outcomes: List[RenameOutcome]
    success_count: int = 0
    error_count: int = 0
    backup_dir: Optional[str] = None
    report: str = ""


class PhotoTourEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    number: int
    id: str
    filepath: str
    filename: str
    latitude: float
    longitude: float
    altitude: float = 0.0
    taken_at: datetime
    camera: str = ""
    lens: str = ""
    thumbnail_name: str
    full_image_name: Optional[str] = None


class TourResult(BaseModel):
    created: bool
    output_path: Optional[str] = None
    photo_count: int = 0
    skipped_count: int = 0
    size_bytes: int = 0
    summary: str


class StripResult(BaseModel):
    filepath: str
    backup_path: Optional[str] = None
    kept_fields: List[str] = []
    summary: str
