"""
Metadata Auto-Filler

Infers structured slide metadata (domain, region, status, format, department,
language, case-study flag, years, solution areas) from extracted text and
frame heuristics, and generates tags from the text and the metadata.

The result is a patch: a field is only emitted when a rule found a signal for
it, so existing metadata is never cleared.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from ..utils.schemas import FigmaNode, MetadataPatch, SlideMetadataFields

logger = logging.getLogger(__name__)


# Keywords match whole words; a trailing "*" marks a stem matched as a prefix.
# Ordered vocabularies: the first field value with a matching keyword wins.
DOMAIN_KEYWORDS: Dict[str, Sequence[str]] = {
    "fintech": ["fintech", "neobank*", "ebanking", "bank*", "payment*", "wallet*",
                "trading", "investment*", "crypto*", "finance", "финтех", "банк*"],
    "ecommerce": ["ecommerce", "e-commerce", "online shop", "online store", "webshop",
                  "интернет-магазин*"],
    "retail": ["retail*", "marketplace*", "shop*", "store", "stores", "commerce",
               "магазин*"],
    "healthcare": ["healthcare", "health", "medical", "doctor*", "patient*", "clinic*",
                   "hospital*", "medicin*", "pharma*", "медицин*"],
    "education": ["education*", "school*", "universit*", "course*", "learning",
                  "student*", "teach*", "training", "образован*"],
    "logistics": ["logistic*", "supply chain", "delivery", "shipping", "логистик*"],
    "automotive": ["automotive", "vehicle*", "carmaker*", "driving", "mobility", "авто*"],
    "manufacturing": ["manufactur*", "factory", "factories", "production", "assembly",
                      "industrial", "производ*"],
    "telecom": ["telecom*", "operator*", "телеком*", "связь"],
    "defense": ["defense", "defence", "military", "army", "national security", "оборон*",
                "военн*"],
    "government": ["government*", "ministry", "правительств*"],
    "public-sector": ["public sector", "municipal*", "federal", "госсектор*"],
    "consulting": ["consulting", "advisory", "consultant*", "консалт*"],
}

REGION_KEYWORDS: Dict[str, Sequence[str]] = {
    "latam": ["latam", "latin america", "brazil*", "mexic*", "argentin*", "chile*",
              "colombia*"],
    "na": ["north america*", "america*", "usa", "united states", "canad*"],
    "apac": ["apac", "asia*", "japan*", "china", "chinese", "singapore*", "australia*",
             "india*", "korea*"],
    "emea": ["emea", "europe*", "middle east", "africa*", "german*", "france", "french",
             "united kingdom"],
}

STATUS_KEYWORDS: Dict[str, Sequence[str]] = {
    "archived": ["archived", "deprecated", "outdated"],
    "approved": ["approved", "final version"],
    "draft": ["draft", "work in progress", "wip"],
}

FORMAT_KEYWORDS: Dict[str, Sequence[str]] = {
    "vertical": ["one-pager", "one pager", "portrait", "a4"],
    "horizontal": ["widescreen", "landscape", "16:9"],
}

DEPARTMENT_KEYWORDS: Dict[str, Sequence[str]] = {
    "engineering": ["developer*", "development", "engineer*", "technical", "code",
                    "programming", "software", "qa", "разработк*"],
    "design": ["designer*", "design", "ui/ux", "ux", "ui", "visual*", "creative",
               "interface*", "graphic*", "дизайн*"],
    "marketing": ["marketing", "brand*", "campaign*", "advertising", "promotion*",
                  "маркетинг*"],
    "sales": ["sales", "sell*", "revenue*", "customer*", "client*", "продаж*"],
    "consulting": ["consulting", "consultant*", "advisory", "консалтинг*"],
    "management": ["management", "strategy", "leadership", "planning", "project manager*",
                   "менеджмент*"],
    "hr": ["human resources", "hr", "recruit*", "people", "кадр*"],
    "finance": ["financial", "finance", "budget*", "accounting", "финанс*"],
}

# Many-to-many: every area with a matching keyword is emitted
SOLUTION_AREA_KEYWORDS: Dict[str, Sequence[str]] = {
    "marketing": ["marketing", "brand*", "campaign*", "advertising", "promotion*",
                  "маркетинг*"],
    "sales": ["sales", "sell*", "revenue*", "customer acquisition", "client*", "продаж*"],
    "engineering": ["developer*", "development", "engineer*", "technical", "code",
                    "programming", "software", "qa", "разработк*"],
    "design": ["designer*", "design", "ui/ux", "ux", "ui", "visual*", "creative",
               "interface*", "graphic*", "дизайн*"],
    "consulting": ["consulting", "consultant*", "advisory", "strategy", "консалтинг*"],
    "management": ["management", "leadership", "planning", "project manager*",
                   "менеджмент*"],
    "hr": ["human resources", "hr", "recruit*", "hiring", "кадр*"],
    "finance": ["financial", "finance", "budget*", "accounting", "финанс*"],
}

TECH_TERMS = ("aws", "cloud*", "azure", "gcp", "security", "compliance", "terraform",
              "devops")

CASE_STUDY_PHRASES = (
    "case study", "case studies", "case-study", "casestudy", "success stor*",
    "client stor*", "customer stor*", "use case*", "client:", "results achieved",
    "кейс*", "история успеха", "история клиента",
)

# Tag vocabulary for generated tags
TAG_KEYWORDS: Dict[str, Sequence[str]] = {
    "web-development": ["web", "website", "frontend", "backend", "webapp", "web app"],
    "mobile-development": ["mobile", "ios", "android", "react native", "flutter"],
    "design": ["design", "ui", "ux", "interface", "mockup", "prototype", "wireframe"],
    "consulting": ["consulting", "consultation", "audit", "strategy", "advisory"],
    "support": ["support", "maintenance", "monitoring", "sla", "uptime"],
    "react": ["react", "jsx", "redux"],
    "nodejs": ["node", "nodejs", "express", "nest"],
    "python": ["python", "django", "flask", "fastapi"],
    "java": ["java", "spring", "jvm"],
    "docker": ["docker", "container", "kubernetes", "k8s"],
    "aws": ["aws", "amazon", "ec2", "lambda"],
    "azure": ["azure", "microsoft cloud"],
    "database": ["database", "sql", "postgres", "mysql", "mongodb", "redis"],
    "api": ["api", "rest", "graphql", "microservice", "webhook"],
    "ai": ["ai", "artificial intelligence", "machine learning", "ml", "llm"],
    "ecommerce": ["ecommerce", "e-commerce", "marketplace", "retail"],
    "fintech": ["fintech", "banking", "payment", "wallet", "trading"],
    "healthcare": ["healthcare", "medical", "clinic", "patient", "telemedicine"],
    "education": ["education", "learning", "course", "university", "edtech"],
    "cover": ["cover", "welcome", "intro"],
    "agenda": ["agenda", "contents", "overview", "outline"],
    "case": ["case", "portfolio", "showcase"],
    "analytics": ["analytics", "metrics", "statistics", "kpi", "dashboard"],
    "security": ["security", "encryption", "oauth", "ssl"],
    "team": ["team", "about us", "who we are", "staff"],
    "contact": ["contact", "get in touch", "email", "phone"],
    "pricing": ["price", "pricing", "cost", "plan", "package"],
    "timeline": ["timeline", "roadmap", "milestone", "schedule"],
    "process": ["process", "workflow", "how it works", "methodology"],
    "testimonial": ["testimonial", "review", "feedback"],
}

DERIVED_TAGS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("development", ("web-development", "mobile-development")),
    ("frontend", ("react",)),
    ("backend", ("nodejs", "python", "java")),
    ("cloud", ("aws", "azure", "docker")),
)

MAX_TEXT_TAGS = 10
MAX_TAGS = 15

YEAR_PATTERN = re.compile(r"\b(20\d{2})\b")
CYRILLIC = re.compile(r"[а-яё]", re.IGNORECASE)
LATIN = re.compile(r"[a-z]", re.IGNORECASE)
FRENCH_MARKS = re.compile(r"[àâçéèêëîïôœùûÿ]", re.IGNORECASE)
GERMAN_MARKS = re.compile(r"[äöüß]", re.IGNORECASE)
MIN_LANGUAGE_LETTERS = 20
_WORD_CHAR = re.compile(r"\w")


def _compile(keyword: str) -> re.Pattern:
    keyword = keyword.lower()
    if keyword.endswith("*"):
        return re.compile(r"(?<!\w)" + re.escape(keyword[:-1]))
    # phrases ending in punctuation ("client:") match as plain substrings
    if not _WORD_CHAR.match(keyword[-1:]):
        return re.compile(re.escape(keyword))
    return re.compile(r"(?<!\w)" + re.escape(keyword) + r"(?!\w)")


def _compile_vocabulary(vocabulary: Mapping[str, Sequence[str]]) -> List[Tuple[str, List[re.Pattern]]]:
    return [
        (value, [_compile(keyword) for keyword in keywords])
        for value, keywords in vocabulary.items()
    ]


def _first_match(haystack: str, compiled: Iterable[Tuple[str, List[re.Pattern]]]) -> Optional[str]:
    for value, patterns in compiled:
        if any(pattern.search(haystack) for pattern in patterns):
            return value
    return None


def _all_matches(haystack: str, compiled: Iterable[Tuple[str, List[re.Pattern]]]) -> List[str]:
    return [
        value for value, patterns in compiled
        if any(pattern.search(haystack) for pattern in patterns)
    ]


@dataclass
class _Signals:
    text: str
    lowered: str
    name_lowered: str
    frame: Optional[FigmaNode]
    current: SlideMetadataFields


class MetadataAutoFiller:
    """
    Rule-based metadata inference.

    Each rule class is independent and the union of their outputs forms the
    patch. A rule that finds no signal emits nothing, and a rule that fails
    is logged and skipped: `autofill` never raises.
    """

    def __init__(self):
        self._domains = _compile_vocabulary(DOMAIN_KEYWORDS)
        self._regions = _compile_vocabulary(REGION_KEYWORDS)
        self._statuses = _compile_vocabulary(STATUS_KEYWORDS)
        self._formats = _compile_vocabulary(FORMAT_KEYWORDS)
        self._departments = _compile_vocabulary(DEPARTMENT_KEYWORDS)
        self._solution_areas = _compile_vocabulary(SOLUTION_AREA_KEYWORDS)
        self._tech_terms = [_compile(term) for term in TECH_TERMS]
        self._case_phrases = [_compile(phrase) for phrase in CASE_STUDY_PHRASES]
        self._tags = _compile_vocabulary(TAG_KEYWORDS)

        self._rules: List[Tuple[str, Callable[[_Signals], Dict[str, Any]]]] = [
            ("vocabulary", self._vocabulary_rule),
            ("format", self._format_rule),
            ("language_region", self._language_region_rule),
            ("case_study", self._case_study_rule),
            ("years", self._year_rule),
            ("solution_areas", self._solution_area_rule),
        ]

    def autofill(
        self,
        text: Optional[str],
        frame_name: Optional[str],
        frame: Optional[FigmaNode] = None,
        current: Optional[SlideMetadataFields] = None,
    ) -> MetadataPatch:
        """
        Infer a metadata patch for one slide.

        Args:
            text: Extracted slide text
            frame_name: Name of the source frame (or current slide title)
            frame: Frame subtree, used for orientation
            current: The slide's current metadata, possibly from a prior run

        Returns:
            MetadataPatch containing only the fields with a signal
        """
        signals = self._signals(text, frame_name, frame, current)

        fields: Dict[str, Any] = {}
        for rule_name, rule in self._rules:
            try:
                fields.update(rule(signals))
            except Exception as e:
                logger.warning(f"Autofill rule '{rule_name}' failed: {e}")

        try:
            return MetadataPatch(**fields)
        except ValueError as e:
            logger.warning(f"Autofill produced an invalid patch, discarding it: {e}")
            return MetadataPatch()

    def _signals(
        self,
        text: Any,
        frame_name: Any,
        frame: Any,
        current: Any,
    ) -> _Signals:
        text = text if isinstance(text, str) else ""
        name = frame_name if isinstance(frame_name, str) else ""
        if not isinstance(frame, FigmaNode):
            frame = None
        if isinstance(current, SlideMetadataFields):
            pass
        elif isinstance(current, Mapping):
            try:
                current = SlideMetadataFields.model_validate(current)
            except ValueError:
                current = SlideMetadataFields()
        else:
            current = SlideMetadataFields()
        return _Signals(
            text=text,
            lowered=f"{text} {name}".lower(),
            name_lowered=name.lower(),
            frame=frame,
            current=current,
        )

    def _vocabulary_rule(self, signals: _Signals) -> Dict[str, Any]:
        fields: Dict[str, Any] = {}
        for field, compiled in (
            ("domain", self._domains),
            ("region", self._regions),
            ("status", self._statuses),
            ("department", self._departments),
        ):
            value = _first_match(signals.lowered, compiled)
            if value is not None:
                fields[field] = value

        # An imported, unmoderated slide is a draft unless told otherwise
        if "status" not in fields and signals.current.status is None:
            fields["status"] = "draft"
        return fields

    def _format_rule(self, signals: _Signals) -> Dict[str, Any]:
        value = _first_match(signals.lowered, self._formats)
        if value is not None:
            return {"format": value}
        frame = signals.frame
        if frame is not None and frame.bounding_box is not None:
            box = frame.bounding_box
            return {"format": "horizontal" if box.width > box.height else "vertical"}
        return {}

    def _language_region_rule(self, signals: _Signals) -> Dict[str, Any]:
        fields: Dict[str, Any] = {}
        cyrillic = len(CYRILLIC.findall(signals.text))
        latin = len(LATIN.findall(signals.text))
        if cyrillic + latin < MIN_LANGUAGE_LETTERS:
            return fields

        french = len(FRENCH_MARKS.findall(signals.text))
        german = len(GERMAN_MARKS.findall(signals.text))
        if cyrillic > latin:
            fields["language"] = "ru"
        elif german and german >= french or "deutsch" in signals.lowered:
            fields["language"] = "de"
        elif french or "français" in signals.lowered:
            fields["language"] = "fr"
        else:
            fields["language"] = "en"

        has_region_keyword = _first_match(signals.lowered, self._regions) is not None
        if fields["language"] in ("fr", "de") and not has_region_keyword:
            fields["region"] = "emea"
        return fields

    def _case_study_rule(self, signals: _Signals) -> Dict[str, Any]:
        if any(pattern.search(signals.name_lowered) for pattern in self._case_phrases):
            return {"is_case_study": True}
        if any(pattern.search(signals.lowered) for pattern in self._case_phrases):
            return {"is_case_study": True}
        if "challenge" in signals.lowered and "solution" in signals.lowered:
            return {"is_case_study": True}
        return {}

    def _year_rule(self, signals: _Signals) -> Dict[str, Any]:
        years = sorted({int(match) for match in YEAR_PATTERN.findall(signals.text)})
        if not years:
            return {}
        fields = {"year_start": years[0]}
        if len(years) > 1:
            fields["year_finish"] = years[-1]
        return fields

    def _solution_area_rule(self, signals: _Signals) -> Dict[str, Any]:
        areas = _all_matches(signals.lowered, self._solution_areas)
        has_tech_terms = any(pattern.search(signals.lowered) for pattern in self._tech_terms)
        if has_tech_terms and "engineering" not in areas:
            areas.append("engineering")
        return {"solution_area_codes": areas} if areas else {}

    # -- tags -----------------------------------------------------------------

    def generate_text_tags(self, text: Optional[str]) -> List[str]:
        """Tags from the tag vocabulary (whole-word matches), at most 10."""
        lowered = (text or "").lower()
        tags = _all_matches(lowered, self._tags)
        for derived, sources in DERIVED_TAGS:
            if derived not in tags and any(source in tags for source in sources):
                tags.append(derived)
        return tags[:MAX_TEXT_TAGS]

    @staticmethod
    def generate_metadata_tags(metadata: SlideMetadataFields) -> List[str]:
        tags: List[str] = []
        if metadata.domain:
            tags.append(f"domain-{metadata.domain}")
        if metadata.department:
            tags.append(f"dept-{metadata.department}")
        tags.extend(f"solution-{area}" for area in metadata.solution_area_codes)
        if metadata.format:
            tags.append(f"format-{metadata.format}")
        if metadata.language:
            tags.append(f"lang-{metadata.language}")
        if metadata.region:
            tags.append(f"region-{metadata.region}")
        if metadata.status:
            tags.append(f"status-{metadata.status}")
        if metadata.is_case_study:
            tags.append("case-study")
        if metadata.year_start:
            tags.append(f"year-{metadata.year_start}")
        if metadata.author_name:
            tags.append("author-" + re.sub(r"\s+", "-", metadata.author_name.lower()))
        return tags

    def generate_tags(self, text: Optional[str], metadata: SlideMetadataFields) -> List[str]:
        """Combined text and metadata tags, de-duplicated in order, at most 15."""
        combined = self.generate_text_tags(text) + self.generate_metadata_tags(metadata)
        return list(dict.fromkeys(combined))[:MAX_TAGS]
