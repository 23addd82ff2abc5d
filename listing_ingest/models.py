"""Data models used throughout the ingestion pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from .errors import InvalidRequestError
from .utils import safe_path_segment

GALLERY_CATEGORIES = ("exterior", "interior", "amenities", "location", "construction")


def empty_gallery() -> Dict[str, List[str]]:
    return {category: [] for category in GALLERY_CATEGORIES}


@dataclass
class ExtractionRequest:
    """A source page and the project its assets are filed under."""

    source_url: str
    project_id: str

    def validate(self) -> "ExtractionRequest":
        """Return a copy with a sanitized project id, or raise InvalidRequestError."""
        if not self.source_url or not self.project_id:
            raise InvalidRequestError(
                "URL and projectId are required",
                details="Both sourceUrl and projectId must be provided.",
            )
        parsed = urlparse(self.source_url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise InvalidRequestError(
                "Invalid source URL",
                details=f"Expected an absolute http(s) URL, got {self.source_url!r}",
            )
        try:
            project_id = safe_path_segment(self.project_id)
        except ValueError as exc:
            raise InvalidRequestError("Invalid projectId", details=str(exc)) from exc
        return ExtractionRequest(source_url=self.source_url, project_id=project_id)


@dataclass
class Amenity:
    id: str
    name: str
    category: str

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "category": self.category}


@dataclass
class FloorPlan:
    """A floor plan image; ``image_path`` is remote until assets are localized."""

    id: str
    title: str
    image_path: str
    description: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "imagePath": self.image_path,
            "description": self.description,
        }


@dataclass
class LocationDetails:
    address: Optional[str] = None
    micro_location: Optional[str] = None
    description: Optional[str] = None
    connectivity: List[str] = field(default_factory=list)
    nearby_landmarks: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "microLocation": self.micro_location,
            "description": self.description,
            "connectivity": list(self.connectivity),
            "nearbyLandmarks": list(self.nearby_landmarks),
        }


@dataclass
class DeveloperInfo:
    name: Optional[str] = None
    about: Optional[str] = None
    experience: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "about": self.about, "experience": self.experience}


@dataclass
class ProjectDocument:
    """Linked PDF; ``type`` is one of brochure, floorplan or other."""

    id: str
    title: str
    type: str
    url: str

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "title": self.title, "type": self.type, "url": self.url}


@dataclass
class ConstructionUpdate:
    id: str
    date: str
    title: str
    description: str
    images: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "date": self.date,
            "title": self.title,
            "description": self.description,
            "images": list(self.images),
        }


@dataclass
class ExtractedDocument:
    """Structured marketing content pulled from a project website."""

    overview: Optional[str] = None
    amenities: List[Amenity] = field(default_factory=list)
    floor_plans: List[FloorPlan] = field(default_factory=list)
    gallery: Dict[str, List[str]] = field(default_factory=empty_gallery)
    project_images: List[str] = field(default_factory=list)
    location_details: LocationDetails = field(default_factory=LocationDetails)
    developer_info: DeveloperInfo = field(default_factory=DeveloperInfo)
    documents: List[ProjectDocument] = field(default_factory=list)
    construction_updates: List[ConstructionUpdate] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the camelCase JSON shape returned to clients."""
        return {
            "overview": self.overview,
            "amenities": [amenity.to_dict() for amenity in self.amenities],
            "floorPlans": [plan.to_dict() for plan in self.floor_plans],
            "gallery": {
                category: list(self.gallery.get(category, []))
                for category in GALLERY_CATEGORIES
            },
            "projectImages": list(self.project_images),
            "locationDetails": self.location_details.to_dict(),
            "developerInfo": self.developer_info.to_dict(),
            "documents": [document.to_dict() for document in self.documents],
            "constructionUpdates": [
                update.to_dict() for update in self.construction_updates
            ],
        }


@dataclass(frozen=True)
class CandidateAsset:
    """Remote image waiting to be fetched, validated and stored."""

    remote_url: str
    project_id: str
    category: str
    ordinal_index: int


@dataclass
class DownloadResult:
    """Outcome of one candidate: either a local path or the reason it was dropped."""

    candidate: CandidateAsset
    local_path: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.local_path is not None
