# -*- coding: utf-8 -*-
"""
Extractor
=========
Campi strutturati da due tipi di sorgente:

HTML (modalità sitemap)
  1) blocco JSON-LD con @type ExerciseAction (diretto o dentro @graph)
  2) URL media del CDN cercati su tutto il testo della pagina
  3) step: strategie in ordine di priorità, vince la prima non vuota
     - correct_steps serializzato (JSON escapato dentro gli script)
     - <li>/<p> della description del JSON-LD
     - liste visibili in <main>/<article>

API (modalità sync)
  - pick_field con chiavi candidate (anche varianti di maiuscole)
  - walk generico sul payload: (valore, key_path) → classificatore
"""

from __future__ import annotations

import html as htmllib
import json
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator, List, Optional, Sequence, Tuple

from bs4 import BeautifulSoup

from exercise_catalog.config import UNKNOWN
from exercise_catalog.errors import ExtractionError
from exercise_catalog.models import MediaCandidate
from exercise_catalog.scraping.fetcher import item_id, url_slug
from exercise_catalog.utils import dedupe, get_logger, norm

logger = get_logger("extractor")

EXERCISE_TYPE = "ExerciseAction"
MEDIA_HOST_RE = re.compile(
    r"https://media\.musclewiki\.com/[^\"'<>\s]+?\.(?:gif|mp4|webm|jpe?g|png|webp)(?![a-z0-9])",
    re.IGNORECASE,
)
PAYLOAD_MEDIA_RE = re.compile(r"\.(?:mp4|mov|webm|gif|jpe?g|png|webp)(?:\?|$)", re.IGNORECASE)
VIDEO_EXT_RE = re.compile(r"\.(?:mp4|mov|webm)(?:\?|$)", re.IGNORECASE)
GIF_EXT_RE = re.compile(r"\.gif(?:\?|$)", re.IGNORECASE)


# ------------------------------------------------------------
# Combinatore di strategie
# ------------------------------------------------------------
def first_non_empty(*strategies: Callable[[], Any]) -> Any:
    """Esegue le strategie in ordine e ritorna il primo risultato non vuoto."""
    for strategy in strategies:
        result = strategy()
        if result:
            return result
    return []


def arrayify(v: Any, split_commas: bool = False) -> List[str]:
    if v is None or v == "":
        return []
    if isinstance(v, (list, tuple)):
        return [str(x) for x in v if x is not None and str(x) != ""]
    if isinstance(v, str) and split_commas:
        return [s.strip() for s in v.split(",") if s.strip()]
    return [str(v)]


# ------------------------------------------------------------
# Media
# ------------------------------------------------------------
def tag_from_text(text: str) -> Tuple[Optional[str], Optional[str]]:
    """(gender, angle) dedotti da una stringa: 'female' prima di 'male', 'side' prima di 'front'."""
    t = text.lower()
    gender = "female" if "female" in t else "male" if "male" in t else None
    angle = "side" if "side" in t else "front" if "front" in t else None
    return gender, angle


def media_kind(url: str) -> str:
    """Le GIF contano come 'video' (animate)."""
    if VIDEO_EXT_RE.search(url) or GIF_EXT_RE.search(url):
        return "video"
    return "image"


def parse_media_url(url: str) -> MediaCandidate:
    gender, angle = tag_from_text(url)
    return MediaCandidate(url=url, kind=media_kind(url), gender=gender, angle=angle)


def discover_media_urls(html: str) -> List[MediaCandidate]:
    """Qualunque URL del CDN media con estensione nota, ovunque nella pagina."""
    urls = dedupe(m.group(0) for m in MEDIA_HOST_RE.finditer(html))
    return [parse_media_url(u) for u in urls]


# ------------------------------------------------------------
# JSON-LD
# ------------------------------------------------------------
def _is_exercise(node: Any) -> bool:
    if not isinstance(node, dict):
        return False
    t = node.get("@type")
    return t == EXERCISE_TYPE or (isinstance(t, list) and EXERCISE_TYPE in t)


def find_exercise_ld(html: str) -> Optional[dict]:
    """Primo blocco ld+json che è (o contiene in @graph) un ExerciseAction."""
    soup = BeautifulSoup(html, "lxml")
    for script in soup.find_all("script", attrs={"type": "application/ld+json"}):
        text = script.string or script.get_text()
        if not text or not text.strip():
            continue
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            logger.debug(f"JSON-LD malformato, salto il blocco: {e}")
            continue
        if _is_exercise(data):
            return data
        graph = data.get("@graph") if isinstance(data, dict) else None
        if isinstance(graph, list):
            hit = next((x for x in graph if _is_exercise(x)), None)
            if hit is not None:
                return hit
    return None


def ld_images(value: Any) -> List[str]:
    """Campo `image` del JSON-LD: stringa, lista, o ImageObject."""
    out: List[str] = []
    items = value if isinstance(value, list) else [value] if value else []
    for it in items:
        if isinstance(it, dict):
            u = it.get("url") or it.get("contentUrl")
            if u:
                out.append(str(u))
        elif it:
            out.append(str(it))
    return dedupe(out)


# ------------------------------------------------------------
# Step / istruzioni
# ------------------------------------------------------------
CORRECT_STEPS_RE = re.compile(r'\\"correct_steps\\":\[(.*?)\],\\"variation_of\\":', re.DOTALL)
TEXT_EN_RE = re.compile(r'\\"text_en_us\\":\\"(.*?)\\"')
TEXT_RE = re.compile(r'\\"text\\":\\"(.*?)\\"')


def unescape_js_string(s: str) -> str:
    s = str(s or "")
    s = s.replace('\\"', '"').replace("\\\\", "\\")
    s = s.replace("\\r\\n", "\n").replace("\\n", "\n").replace("\\t", "\t")
    return re.sub(r"\\u([0-9a-fA-F]{4})", lambda m: chr(int(m.group(1), 16)), s)


def steps_from_escaped_json(html: str) -> List[str]:
    """Step da `correct_steps` serializzato; preferisce text_en_us a text."""
    m = CORRECT_STEPS_RE.search(html)
    if not m:
        return []
    block = m.group(1)

    def collect(rx: re.Pattern) -> List[str]:
        return [t for t in (unescape_js_string(x).strip() for x in rx.findall(block)) if t]

    return dedupe(first_non_empty(lambda: collect(TEXT_EN_RE), lambda: collect(TEXT_RE)))


def strip_tags(fragment: str) -> str:
    """Testo visibile di un frammento HTML; <br> → a capo, spazi collassati."""
    s = re.sub(r"<br\s*/?>", "\n", str(fragment or ""), flags=re.IGNORECASE)
    s = re.sub(r"<[^>]+>", " ", s)
    return norm(htmllib.unescape(s).replace("\u00a0", " "))


def steps_from_html(fragment: str) -> List[str]:
    """<li> e poi i <p> non già presenti."""
    if not fragment:
        return []
    chunks = [strip_tags(m) for m in re.findall(r"<li[^>]*>(.*?)</li>", fragment, re.IGNORECASE | re.DOTALL)]
    for p in re.findall(r"<p[^>]*>(.*?)</p>", fragment, re.IGNORECASE | re.DOTALL):
        text = strip_tags(p)
        if text and text not in chunks:
            chunks.append(text)
    return dedupe(c for c in chunks if c)


def steps_from_page_lists(html: str) -> List[str]:
    """Ultima spiaggia: voci di liste dentro <main>/<article>."""
    soup = BeautifulSoup(html, "lxml")
    container = soup.find("main") or soup.find("article")
    if container is None:
        return []
    items = [norm(li.get_text(" ")) for lst in container.find_all(["ol", "ul"]) for li in lst.find_all("li")]
    return dedupe(i for i in items if i)


# ------------------------------------------------------------
# Pagina HTML → ParsedPage
# ------------------------------------------------------------
@dataclass
class ParsedPage:
    url: str
    url_slug: str
    name: str
    description_html: str = ""
    equipment: str = ""
    difficulty: str = UNKNOWN
    force: str = ""
    muscle_group: List[str] = field(default_factory=list)
    secondary_muscle_groups: List[str] = field(default_factory=list)
    images: List[str] = field(default_factory=list)
    media: List[MediaCandidate] = field(default_factory=list)
    steps: List[str] = field(default_factory=list)


def parse_exercise_page(html: str, url: str) -> ParsedPage:
    ld = find_exercise_ld(html)
    if ld is None:
        raise ExtractionError(f"No {EXERCISE_TYPE} JSON-LD found")

    description = str(ld.get("description") or "")
    steps = first_non_empty(
        lambda: steps_from_escaped_json(html),
        lambda: steps_from_html(description),
        lambda: steps_from_page_lists(html),
    )
    return ParsedPage(
        url=url,
        url_slug=url_slug(url),
        name=norm(ld.get("name")),
        description_html=description,
        equipment=norm(ld.get("equipment") or ld.get("exerciseType")),
        difficulty=norm(ld.get("difficulty")) or UNKNOWN,
        force=norm(ld.get("force")).lower(),
        muscle_group=arrayify(ld.get("muscleGroup")),
        secondary_muscle_groups=arrayify(ld.get("secondaryMuscleGroups")),
        images=ld_images(ld.get("image")),
        media=discover_media_urls(html),
        steps=list(steps),
    )


# ------------------------------------------------------------
# Payload API
# ------------------------------------------------------------
def pick_field(obj: Any, keys: Sequence[str]) -> str:
    """Primo valore non vuoto tra le chiavi candidate."""
    if not isinstance(obj, dict):
        return ""
    for k in keys:
        v = obj.get(k)
        if v is not None and str(v).strip() != "":
            return str(v).strip()
    return ""


def walk(value: Any, key_path: Tuple[str, ...] = ()) -> Iterator[Tuple[Any, Tuple[str, ...]]]:
    """Visita depth-first: produce (valore, key_path) per ogni nodo, radice inclusa."""
    yield value, key_path
    if isinstance(value, dict):
        for k, v in value.items():
            yield from walk(v, key_path + (str(k),))
    elif isinstance(value, list):
        for i, v in enumerate(value):
            yield from walk(v, key_path + (str(i),))


def classify_payload_media(value: Any, key_path: Tuple[str, ...]) -> Optional[MediaCandidate]:
    if not isinstance(value, str) or not re.match(r"^https?://", value, re.IGNORECASE):
        return None
    if not PAYLOAD_MEDIA_RE.search(value):
        return None
    # key path e URL insieme: la precedenza side/female vale su entrambi
    gender, angle = tag_from_text(".".join(key_path) + " " + value)
    return MediaCandidate(url=value, kind=media_kind(value), gender=gender, angle=angle)


def media_candidates_from_payload(payload: Any) -> List[MediaCandidate]:
    found = (classify_payload_media(v, p) for v, p in walk(payload))
    return dedupe((c for c in found if c is not None), key=lambda c: c.url)


INSTRUCTION_KEYS = ("instructions", "Instructions", "steps", "Steps", "exercise_instructions")
STEP_SPLIT_RE = re.compile(r"\n+|\r+|\d+\.\s+")


def _step_lines(value: Any) -> List[str]:
    if isinstance(value, list):
        out = []
        for x in value:
            if isinstance(x, dict):
                x = pick_field(x, ("text", "description", "step"))
            out.append(str(x).strip())
        return [s for s in out if s]
    if isinstance(value, str):
        return [s.strip() for s in STEP_SPLIT_RE.split(value) if s.strip()]
    return []


def extract_instructions(detail: Any) -> List[str]:
    if isinstance(detail, dict):
        for k in INSTRUCTION_KEYS:
            lines = _step_lines(detail.get(k))
            if lines:
                return dedupe(lines)
    for value, key_path in walk(detail):
        key = key_path[-1].lower() if key_path else ""
        if re.search(r"instruction|step", key):
            lines = _step_lines(value)
            if lines:
                return dedupe(lines)
    return []


@dataclass
class ListItem:
    """Riga leggera del listing API."""
    id: str
    name: str
    equipment: str = ""
    difficulty: str = UNKNOWN
    muscle: str = UNKNOWN
    raw: Any = None


NAME_KEYS = ("exercise_name", "name", "Name")
EQUIPMENT_KEYS = ("equipment", "Equipment")
DIFFICULTY_KEYS = ("difficulty", "Difficulty")
MUSCLE_KEYS = ("muscle", "Muscle", "muscle_group", "MuscleGroup")
FORCE_KEYS = ("force", "Force")
SECONDARY_KEYS = ("secondaryMuscles", "secondary_muscles", "SecondaryMuscles")


def parse_list_item(raw: Any) -> Optional[ListItem]:
    ex_id = item_id(raw)
    if not ex_id:
        return None
    return ListItem(
        id=ex_id,
        name=pick_field(raw, NAME_KEYS) or ex_id,
        equipment=pick_field(raw, EQUIPMENT_KEYS),
        difficulty=pick_field(raw, DIFFICULTY_KEYS) or UNKNOWN,
        muscle=pick_field(raw, MUSCLE_KEYS) or UNKNOWN,
        raw=raw,
    )


def secondary_muscles(detail: Any) -> List[str]:
    if not isinstance(detail, dict):
        return []
    for k in SECONDARY_KEYS:
        if detail.get(k):
            return arrayify(detail[k], split_commas=True)
    return []
