"""HTML extraction heuristics for project marketing pages."""

from __future__ import annotations

import datetime as dt
import re
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Pattern, Sequence, Tuple

from bs4 import BeautifulSoup, Tag

from .errors import ParseError
from .models import (
    GALLERY_CATEGORIES,
    Amenity,
    ConstructionUpdate,
    DeveloperInfo,
    ExtractedDocument,
    FloorPlan,
    LocationDetails,
    ProjectDocument,
)
from .utils import random_id, resolve_url

Matcher = Callable[[BeautifulSoup], Optional[str]]

OVERVIEW_SELECTORS = (
    ".project-overview",
    ".overview",
    ".description",
    ".about-project",
    '[class*="overview"]',
    '[class*="description"]',
    "section.about",
    ".project-details p",
)
PREVIEW_OVERVIEW_SELECTORS = (
    ".overview",
    ".description",
    ".about",
    '[class*="overview"]',
    '[class*="description"]',
    'p:-soup-contains("overview")',
    'div:-soup-contains("about")',
)
# Preview and full extraction keep separate minimum lengths.
OVERVIEW_MIN_CHARS = 50
PREVIEW_OVERVIEW_MIN_CHARS = 100
PREVIEW_OVERVIEW_MAX_CHARS = 1000

AMENITY_SELECTORS = (
    ".amenities ul li",
    ".amenity-list li",
    '[class*="amenity"] li',
    ".features li",
)
PREVIEW_AMENITY_SELECTORS = (
    ".amenities li",
    ".amenity",
    '[class*="amenity"]',
    ".features li",
    ".facility",
)
MAX_AMENITIES = 50
PREVIEW_MAX_AMENITIES = 20
PREVIEW_MAX_AMENITY_CHARS = 100

# First match wins; the last entry catches everything.
AMENITY_CATEGORIES: Tuple[Tuple[Pattern[str], str], ...] = (
    (re.compile(r"pool|swim|spa|gym|fitness|yoga", re.I), "Fitness & Wellness"),
    (re.compile(r"park|garden|landscape|green", re.I), "Outdoor"),
    (re.compile(r"club|lounge|party|banquet", re.I), "Leisure"),
    (re.compile(r"security|cctv|guard", re.I), "Security"),
    (re.compile(r"play|kids|children", re.I), "Kids"),
    (re.compile(r"sport|court|cricket|tennis|badminton", re.I), "Sports"),
    (re.compile(r""), "General"),
)

# (category, alt-text keywords, ancestor-class keywords)
GALLERY_RULES: Tuple[Tuple[str, Pattern[str], Pattern[str]], ...] = (
    ("exterior", re.compile(r"exterior|building|tower|elevation", re.I), re.compile(r"exterior", re.I)),
    ("interior", re.compile(r"interior|room|living|bedroom|kitchen", re.I), re.compile(r"interior", re.I)),
    ("amenities", re.compile(r"amenity|pool|gym|club", re.I), re.compile(r"amenity", re.I)),
    ("location", re.compile(r"location|map|site", re.I), re.compile(r"location", re.I)),
    ("construction", re.compile(r"construction|progress", re.I), re.compile(r"construction", re.I)),
)
DEFAULT_GALLERY_CATEGORY = "exterior"
MAX_GALLERY_IMAGES = 20
GALLERY_SKIP_PATTERN = re.compile(r"logo|icon", re.I)

FLOOR_PLAN_PATTERN = re.compile(r"floor|plan", re.I)
FLOOR_PLAN_SELECTORS = (
    ".floor-plan img",
    ".floorplan img",
    '[class*="floor"] img',
    '[class*="plan"] img',
)

PROJECT_IMAGE_SELECTORS = (
    'img[src*="gallery"]',
    'img[src*="project"]',
    'img[src*="image"]',
    'img[class*="gallery"]',
    ".gallery img",
    ".slider img",
    ".carousel img",
    ".hero img",
    ".banner img",
    '[class*="slider"] img',
    '[class*="carousel"] img',
    '[class*="hero"] img',
    '[class*="banner"] img',
    'img[alt*="project"]',
    'img[alt*="gallery"]',
)
PROJECT_IMAGE_SKIP_PATTERN = re.compile(r"icon|logo|sprite", re.I)
MAX_PROJECT_IMAGES = 20
ICON_MAX_SIDE = 200
# Plain or px values only; percentages never mark an icon.
PIXEL_SIZE_PATTERN = re.compile(r"\s*(\d+)\s*(?:px)?\s*", re.I)

DOCUMENT_TYPES: Tuple[Tuple[Pattern[str], str], ...] = (
    (re.compile(r"brochure", re.I), "brochure"),
    (re.compile(r"floor", re.I), "floorplan"),
    (re.compile(r""), "other"),
)
PDF_LINK_PATTERN = re.compile(r"\.pdf", re.I)

CONSTRUCTION_UPDATE_SELECTOR = '.construction-update, [class*="progress"] [class*="update"]'


@dataclass
class PageExtraction:
    """Extracted document plus the remote image URLs still to be localized."""

    document: ExtractedDocument
    project_image_urls: List[str] = field(default_factory=list)
    gallery_urls: Dict[str, List[str]] = field(default_factory=dict)

    @property
    def floor_plan_urls(self) -> List[str]:
        return [plan.image_path for plan in self.document.floor_plans]


def _text(element: Optional[Tag]) -> str:
    """Whitespace-normalized text of an element."""
    if element is None:
        return ""
    return " ".join(element.get_text(" ").split())


def _first_text(soup: BeautifulSoup, selector: str) -> Optional[str]:
    return _text(soup.select_one(selector)) or None


def _unique(values: Iterable[str]) -> List[str]:
    seen = set()
    ordered = []
    for value in values:
        if value and value not in seen:
            seen.add(value)
            ordered.append(value)
    return ordered


def _image_src(img: Tag) -> str:
    return (img.get("src") or img.get("data-src") or "").strip()


def _class_string(element: Optional[Tag]) -> str:
    if element is None:
        return ""
    classes = element.get("class") or []
    if isinstance(classes, str):
        return classes
    return " ".join(classes)


def _int_attr(img: Tag, name: str) -> Optional[int]:
    match = PIXEL_SIZE_PATTERN.fullmatch(str(img.get(name) or ""))
    return int(match.group(1)) if match else None


def document_base_url(soup: BeautifulSoup, page_url: str) -> str:
    """Honor ``<base href>`` when present, otherwise use the page URL."""
    base = soup.find("base", href=True)
    if base:
        return resolve_url(base["href"], page_url) or page_url
    return page_url


def parse_html(html: str) -> BeautifulSoup:
    """Parse markup, raising ParseError when there is nothing to extract from."""
    if not html or not html.strip():
        raise ParseError("Empty response body", details="The page returned no content.")
    try:
        soup = BeautifulSoup(html, "html.parser")
    except Exception as exc:  # noqa: BLE001 - parser internals vary
        raise ParseError("Unable to parse page HTML", details=str(exc)) from exc
    if soup.find(True) is None:
        raise ParseError(
            "Response is not HTML", details="No HTML elements found in the response."
        )
    return soup


def selector_matcher(selector: str) -> Matcher:
    def match(soup: BeautifulSoup) -> Optional[str]:
        return _first_text(soup, selector)

    return match


def first_match(
    soup: BeautifulSoup,
    matchers: Sequence[Matcher],
    min_chars: int,
) -> Optional[str]:
    """Run matchers in order and return the first result longer than ``min_chars``."""
    for matcher in matchers:
        text = matcher(soup)
        if text and len(text) > min_chars:
            return text
    return None


OVERVIEW_MATCHERS = tuple(selector_matcher(s) for s in OVERVIEW_SELECTORS)
PREVIEW_OVERVIEW_MATCHERS = tuple(selector_matcher(s) for s in PREVIEW_OVERVIEW_SELECTORS)


def extract_overview(soup: BeautifulSoup, preview: bool = False) -> Optional[str]:
    if preview:
        text = first_match(soup, PREVIEW_OVERVIEW_MATCHERS, PREVIEW_OVERVIEW_MIN_CHARS)
        return text[:PREVIEW_OVERVIEW_MAX_CHARS] if text else None
    return first_match(soup, OVERVIEW_MATCHERS, OVERVIEW_MIN_CHARS)


def classify(text: str, table: Sequence[Tuple[Pattern[str], str]]) -> str:
    """Return the label of the first pattern in ``table`` found in ``text``."""
    for pattern, label in table:
        if pattern.search(text):
            return label
    return table[-1][1]


def categorize_amenity(name: str) -> str:
    return classify(name, AMENITY_CATEGORIES)


def extract_amenities(soup: BeautifulSoup, preview: bool = False) -> List[Amenity]:
    selectors = PREVIEW_AMENITY_SELECTORS if preview else AMENITY_SELECTORS
    limit = PREVIEW_MAX_AMENITIES if preview else MAX_AMENITIES

    names = []
    for selector in selectors:
        for element in soup.select(selector):
            name = _text(element)
            if preview and len(name) >= PREVIEW_MAX_AMENITY_CHARS:
                continue
            names.append(name)

    return [
        Amenity(id=random_id(), name=name, category=categorize_amenity(name))
        for name in _unique(names)[:limit]
    ]


def extract_floor_plans(soup: BeautifulSoup, base_url: str) -> List[FloorPlan]:
    """Images whose src or enclosing container mentions a floor plan."""
    in_container = set()
    for selector in FLOOR_PLAN_SELECTORS:
        in_container.update(id(img) for img in soup.select(selector))

    plans: List[FloorPlan] = []
    seen = set()
    for img in soup.find_all("img"):
        src = _image_src(img)
        if not src or src.startswith("data:"):
            continue
        if not (FLOOR_PLAN_PATTERN.search(src) or id(img) in in_container):
            continue
        url = resolve_url(src, base_url)
        if url in seen:
            continue
        seen.add(url)

        container = img.find_parent("div")
        description = _text(container.find("p")) if container else ""
        plans.append(
            FloorPlan(
                id=random_id(),
                title=(img.get("alt") or "").strip() or f"Floor Plan {len(plans) + 1}",
                image_path=url,
                description=description or None,
            )
        )
    return plans


def categorize_gallery_image(alt: str, container_class: str) -> str:
    """Alt text decides first, then the enclosing container's class."""
    for category, alt_pattern, _ in GALLERY_RULES:
        if alt and alt_pattern.search(alt):
            return category
    for category, _, class_pattern in GALLERY_RULES:
        if container_class and class_pattern.search(container_class):
            return category
    return DEFAULT_GALLERY_CATEGORY


def extract_gallery(soup: BeautifulSoup, base_url: str) -> Dict[str, List[str]]:
    gallery: Dict[str, List[str]] = {category: [] for category in GALLERY_CATEGORIES}
    for img in soup.find_all("img"):
        src = _image_src(img)
        if not src or src.startswith("data:") or GALLERY_SKIP_PATTERN.search(src):
            continue
        container = img.find_parent(["section", "div"])
        category = categorize_gallery_image(img.get("alt") or "", _class_string(container))
        gallery[category].append(resolve_url(src, base_url))

    return {
        category: _unique(urls)[:MAX_GALLERY_IMAGES] for category, urls in gallery.items()
    }


def _looks_like_icon(img: Tag) -> bool:
    width = _int_attr(img, "width")
    height = _int_attr(img, "height")
    return (
        width is not None
        and height is not None
        and width <= ICON_MAX_SIDE
        and height <= ICON_MAX_SIDE
    )


def extract_project_images(soup: BeautifulSoup, base_url: str) -> List[str]:
    urls = []
    for selector in PROJECT_IMAGE_SELECTORS:
        for img in soup.select(selector):
            src = _image_src(img)
            if not src or src.startswith("data:"):
                continue
            if _looks_like_icon(img):
                continue
            url = resolve_url(src, base_url)
            if PROJECT_IMAGE_SKIP_PATTERN.search(url):
                continue
            urls.append(url)
    return _unique(urls)[:MAX_PROJECT_IMAGES]


def _list_items(soup: BeautifulSoup, selector: str) -> List[str]:
    return [text for text in (_text(li) for li in soup.select(selector)) if text]


def extract_location(soup: BeautifulSoup) -> LocationDetails:
    return LocationDetails(
        address=_first_text(soup, '[class*="address"]'),
        micro_location=_first_text(soup, '[class*="location"]'),
        description=_first_text(soup, '[class*="location"] p'),
        connectivity=_list_items(soup, '[class*="connectivity"] li, [class*="nearby"] li'),
        nearby_landmarks=_list_items(soup, '[class*="landmark"] li'),
    )


def extract_developer(soup: BeautifulSoup) -> DeveloperInfo:
    return DeveloperInfo(
        name=_first_text(soup, '.developer-name, [class*="developer"] h3'),
        about=_first_text(soup, '.developer-about, [class*="developer"] p'),
        experience=_first_text(soup, '[class*="experience"]'),
    )


def extract_documents(soup: BeautifulSoup, base_url: str) -> List[ProjectDocument]:
    documents = []
    for anchor in soup.find_all("a", href=PDF_LINK_PATTERN):
        title = _text(anchor)
        documents.append(
            ProjectDocument(
                id=random_id(),
                title=title or "Document",
                type=classify(title, DOCUMENT_TYPES),
                url=resolve_url(anchor["href"], base_url),
            )
        )
    return documents


def _utc_now_iso() -> str:
    return (
        dt.datetime.now(dt.timezone.utc)
        .replace(microsecond=0)
        .isoformat()
        .replace("+00:00", "Z")
    )


def extract_construction_updates(
    soup: BeautifulSoup, base_url: str
) -> List[ConstructionUpdate]:
    updates = []
    for element in soup.select(CONSTRUCTION_UPDATE_SELECTOR):
        title = _text(element.select_one("h3, h4, .title"))
        date = _text(element.select_one('.date, [class*="date"]'))
        description = " ".join(_text(p) for p in element.find_all("p")).strip()
        if not (title or description):
            continue
        images = _unique(
            resolve_url(src, base_url)
            for src in (_image_src(img) for img in element.find_all("img"))
            if src and not src.startswith("data:")
        )
        updates.append(
            ConstructionUpdate(
                id=random_id(),
                date=date or _utc_now_iso(),
                title=title or "Construction Update",
                description=description,
                images=images,
            )
        )
    return updates


def extract_content(html: str, page_url: str, preview: bool = False) -> PageExtraction:
    """Run every sub-extractor over one parsed page.

    Image fields on the returned document still hold remote URLs; the
    orchestrator swaps them for local paths once assets are downloaded.
    Preview mode uses the lighter overview and amenity heuristics.
    """
    soup = parse_html(html)
    base_url = document_base_url(soup, page_url)

    gallery_urls = extract_gallery(soup, base_url)
    project_image_urls = extract_project_images(soup, base_url)
    document = ExtractedDocument(
        overview=extract_overview(soup, preview=preview),
        amenities=extract_amenities(soup, preview=preview),
        floor_plans=extract_floor_plans(soup, base_url),
        gallery={category: list(urls) for category, urls in gallery_urls.items()},
        project_images=list(project_image_urls),
        location_details=extract_location(soup),
        developer_info=extract_developer(soup),
        documents=extract_documents(soup, base_url),
        construction_updates=extract_construction_updates(soup, base_url),
    )
    return PageExtraction(
        document=document,
        project_image_urls=project_image_urls,
        gallery_urls=gallery_urls,
    )
