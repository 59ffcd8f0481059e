"""
Parsing of ``[OTAKON_NAME: value]`` tags in model output.

The model is instructed to annotate its answer with tags (game
identification, progress, objectives, insight updates, suggestions). Tags
are removed from the text shown to the user and returned separately.
"""
import json
import re
from typing import Any, Dict, NamedTuple, Optional

TAG_START = re.compile(r"\[OTAKON_([A-Z_]+):\s*")
HINT_BLOCK = re.compile(r"\[OTAKON_HINT_START\]([\s\S]*?)\[OTAKON_HINT_END\]")
HINT_MARKERS = re.compile(r"\[OTAKON_HINT_START\]|\[OTAKON_HINT_END\]")

GAME_ID = "GAME_ID"
CONFIDENCE = "CONFIDENCE"
GENRE = "GENRE"
GAME_PROGRESS = "GAME_PROGRESS"
OBJECTIVE_SET = "OBJECTIVE_SET"
OBJECTIVE_COMPLETE = "OBJECTIVE_COMPLETE"
INSIGHT_UPDATE = "INSIGHT_UPDATE"
INVENTORY = "INVENTORY"
SUGGESTIONS = "SUGGESTIONS"
TRIUMPH = "TRIUMPH"


class ParsedResponse(NamedTuple):
    clean_content: str
    tags: Dict[str, Any]
    hint: Optional[str] = None


def game_id_from_title(title: str) -> str:
    """Slug used as the conversation id of a game tab."""
    slug = re.sub(r"[^a-z0-9]+", "-", title.strip().lower()).strip("-")
    return slug or "game"


def _scan_value(text: str, start: int) -> Optional[int]:
    """Return the index of the ``]`` closing the tag whose value starts at ``start``."""
    opener = text[start:start + 1]
    if opener in ("{", "["):
        closer = "}" if opener == "{" else "]"
        depth = 0
        quote = None
        i = start
        while i < len(text):
            ch = text[i]
            if quote:
                if ch == "\\":
                    i += 2
                    continue
                if ch == quote:
                    quote = None
            elif ch in ('"', "'"):
                quote = ch
            elif ch == opener:
                depth += 1
            elif ch == closer:
                depth -= 1
                if depth == 0:
                    end = text.find("]", i + 1)
                    # Only whitespace may sit between the value and the tag's bracket
                    if end != -1 and not text[i + 1:end].strip():
                        return end
                    break
            i += 1
    end = text.find("]", start)
    return end if end != -1 else None


def _decode(value: str) -> Any:
    if value.startswith("{") and value.endswith("}"):
        try:
            return json.loads(value)
        except ValueError:
            return value
    if value.startswith("[") and value.endswith("]"):
        try:
            return json.loads(value)
        except ValueError:
            try:
                return json.loads(value.replace("'", '"'))
            except ValueError:
                return value
    return value


def parse_otakon_tags(raw: str) -> ParsedResponse:
    """
    Split a model response into display text and tags.

    JSON objects and lists are decoded (single-quoted lists are tolerated);
    anything that fails to decode is kept as a string. A repeated tag keeps
    its last value.
    """
    raw = raw or ""
    hint_match = HINT_BLOCK.search(raw)
    hint = hint_match.group(1).strip() if hint_match else None

    tags: Dict[str, Any] = {}
    pieces = []
    pos = 0
    for match in TAG_START.finditer(raw):
        if match.start() < pos:
            continue
        end = _scan_value(raw, match.end())
        if end is None:
            break
        tags[match.group(1)] = _decode(raw[match.end():end].strip())
        pieces.append(raw[pos:match.start()])
        pos = end + 1
    pieces.append(raw[pos:])

    content = HINT_MARKERS.sub("", "".join(pieces))
    content = re.sub(r"\n{3,}", "\n\n", content).strip()
    return ParsedResponse(clean_content=content, tags=tags, hint=hint)


def parse_progress(value: Any) -> Optional[int]:
    """Clamp a GAME_PROGRESS tag value to 0-100."""
    try:
        progress = int(str(value).strip().rstrip("%"))
    except (TypeError, ValueError):
        return None
    return max(0, min(100, progress))


def is_truthy_tag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("true", "yes", "1")
