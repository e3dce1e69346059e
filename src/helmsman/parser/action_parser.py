"""Action Parser - Turns free-form model output into structured actions."""

import json
import math
import re
from typing import Any, Iterator

import structlog
from pydantic import ValidationError

from helmsman.core.types import (
    ActionType,
    AnalysisResult,
    Coordinates,
    LocationResult,
    ParsedAction,
)


logger = structlog.get_logger()


HEURISTIC_CONFIDENCE = 0.3
DEFAULT_CONFIDENCE = 0.5

# Bounds for the bracket scan on malformed text
MAX_LITERAL_STARTS = 32
MAX_SCAN_CHARS = 50_000

ACTION_TYPE_SYNONYMS: dict[str, ActionType] = {
    "click": ActionType.CLICK,
    "single-click": ActionType.CLICK,
    "left-click": ActionType.CLICK,
    "tap": ActionType.CLICK,
    "double-click": ActionType.DOUBLE_CLICK,
    "doubleclick": ActionType.DOUBLE_CLICK,
    "right-click": ActionType.RIGHT_CLICK,
    "rightclick": ActionType.RIGHT_CLICK,
    "context-menu": ActionType.RIGHT_CLICK,
    "type": ActionType.TYPE,
    "input": ActionType.TYPE,
    "enter": ActionType.TYPE,
    "write": ActionType.TYPE,
    "press": ActionType.PRESS,
    "key": ActionType.PRESS,
    "keypress": ActionType.PRESS,
    "hotkey": ActionType.HOTKEY,
    "shortcut": ActionType.HOTKEY,
    "keyboard-shortcut": ActionType.HOTKEY,
    "scroll": ActionType.SCROLL,
    "scroll-down": ActionType.SCROLL,
    "scroll-up": ActionType.SCROLL,
    "wait": ActionType.WAIT,
    "pause": ActionType.WAIT,
    "delay": ActionType.WAIT,
    "sleep": ActionType.WAIT,
    "navigate": ActionType.NAVIGATE,
    "open": ActionType.NAVIGATE,
    "go-to": ActionType.NAVIGATE,
    "goto": ActionType.NAVIGATE,
    "launch": ActionType.NAVIGATE,
    "drag": ActionType.DRAG,
    "drag-drop": ActionType.DRAG,
    "drag-and-drop": ActionType.DRAG,
    "hover": ActionType.HOVER,
    "mouseover": ActionType.HOVER,
    "mouse-over": ActionType.HOVER,
    "move-to": ActionType.HOVER,
}

_FENCED_BLOCK = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)
_LEADING_NUMBER = re.compile(r"^\s*([+-]?\d+(?:\.\d+)?)")


def _iter_literals(text: str, open_char: str, close_char: str) -> Iterator[str]:
    """Yield balanced bracketed substrings, skipping brackets inside strings.

    At most MAX_LITERAL_STARTS opening brackets are tried, so unbalanced
    input costs linear time per start instead of quadratic overall.
    """
    text = text[:MAX_SCAN_CHARS]
    start = text.find(open_char)
    starts = 0
    while start != -1 and starts < MAX_LITERAL_STARTS:
        starts += 1
        depth = 0
        in_string = False
        escaped = False
        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == open_char:
                depth += 1
            elif ch == close_char:
                depth -= 1
                if depth == 0:
                    yield text[start:i + 1]
                    break
        start = text.find(open_char, start + 1)


def _try_loads(text: str) -> tuple[bool, Any]:
    try:
        return True, json.loads(text)
    except (json.JSONDecodeError, ValueError, RecursionError):
        return False, None


def extract_json(text: str) -> Any | None:
    """Extract structured data from model text.

    Tries, in order: the whole text, the first fenced code block, the first
    balanced object literal, then the first balanced array literal.

    Args:
        text: Raw model output

    Returns:
        Decoded JSON value, or None if nothing structured was found
    """
    if not isinstance(text, str) or not text.strip():
        return None

    ok, value = _try_loads(text.strip())
    if ok:
        return value

    match = _FENCED_BLOCK.search(text)
    if match:
        ok, value = _try_loads(match.group(1).strip())
        if ok:
            return value

    for open_char, close_char in (("{", "}"), ("[", "]")):
        for candidate in _iter_literals(text, open_char, close_char):
            ok, value = _try_loads(candidate)
            if ok:
                return value

    return None


def coerce_int(value: Any, default: int = 0) -> int:
    """Leniently read an integer ("12px" -> 12), falling back to default."""
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else default
    if value is None:
        return default
    match = _LEADING_NUMBER.match(str(value))
    if not match:
        return default
    try:
        return int(match.group(1).split(".")[0])
    except ValueError:
        return default


def _clamp_confidence(value: Any) -> float:
    if value is None or isinstance(value, bool):
        return DEFAULT_CONFIDENCE
    try:
        confidence = float(value)
    except (TypeError, ValueError, OverflowError):
        return DEFAULT_CONFIDENCE
    if confidence != confidence:  # NaN
        return DEFAULT_CONFIDENCE
    return min(1.0, max(0.0, confidence))


def _first(data: dict, params: dict, key: str, *aliases: str) -> Any:
    """Return the first non-empty value for key, top-level before params."""
    for name in (key, *aliases):
        for source in (data, params):
            value = source.get(name)
            if value not in (None, ""):
                return value
    return None


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def _as_str_list(value: Any) -> list[str]:
    if isinstance(value, list):
        return [str(v) for v in value if v is not None]
    return []


class ActionParser:
    """Parses model responses into actions, analyses and locations."""

    def parse_action(self, response: str) -> ParsedAction | None:
        """Parse a single action from a model response.

        Args:
            response: Raw model text

        Returns:
            ParsedAction, or None when no action could be determined
        """
        data = extract_json(response)

        if not isinstance(data, dict):
            return self._parse_natural_language(response)

        try:
            return self._from_dict(data)
        except ValidationError as e:
            logger.warning("action_validation_failed", error=str(e))
            return None

    def parse_analysis(self, response: str) -> AnalysisResult:
        """Parse a screen analysis response.

        Falls back to a keyword reading of the text when no JSON is present.

        Args:
            response: Raw model text

        Returns:
            AnalysisResult
        """
        data = extract_json(response)
        text = response if isinstance(response, str) else ""

        if not isinstance(data, dict):
            logger.debug("analysis_heuristic_fallback", response_preview=text[:200])
            return AnalysisResult(
                is_task_complete=self._looks_complete(text),
                current_state=text[:200],
            )

        complete = data.get("isTaskComplete", data.get("is_task_complete", False))
        if isinstance(complete, str):
            complete = complete.strip().lower() in ("true", "yes", "1")

        return AnalysisResult(
            is_task_complete=bool(complete),
            current_state=_as_text(
                data.get("currentState", data.get("current_state", ""))
            ),
            visible_elements=_as_str_list(
                data.get("visibleElements", data.get("visible_elements"))
            ),
            suggestions=_as_str_list(data.get("suggestions")),
        )

    def parse_location(self, response: str) -> LocationResult:
        """Parse an element-location response.

        Args:
            response: Raw model text

        Returns:
            LocationResult, with found=False when unparseable
        """
        data = extract_json(response)

        if not isinstance(data, dict):
            return LocationResult()

        alternatives = data.get("alternatives")
        return LocationResult(
            found=bool(data.get("found", False)),
            x=coerce_int(data.get("x")),
            y=coerce_int(data.get("y")),
            confidence=_clamp_confidence(data.get("confidence", 0.0)),
            alternatives=[a for a in alternatives if isinstance(a, dict)]
            if isinstance(alternatives, list)
            else [],
        )

    def parse_multiple_actions(self, response: str) -> list[ParsedAction]:
        """Parse a list of actions.

        Accepts {"actions": [...]} or a bare JSON array; anything else is
        treated as a single action.

        Args:
            response: Raw model text

        Returns:
            Parsed actions, skipping entries that could not be parsed
        """
        data = extract_json(response)

        items = None
        if isinstance(data, dict) and isinstance(data.get("actions"), list):
            items = data["actions"]
        elif isinstance(data, list):
            items = data

        if items is not None:
            actions = []
            for item in items:
                if not isinstance(item, dict):
                    continue
                try:
                    action = self._from_dict(item)
                except ValidationError as e:
                    logger.debug("action_entry_skipped", error=str(e))
                    continue
                if action is not None:
                    actions.append(action)
            return actions

        action = self.parse_action(response)
        return [action] if action else []

    def normalize_action_type(self, value: Any) -> ActionType | None:
        """Map a loose type string onto the closed action set."""
        if not isinstance(value, str) or not value.strip():
            return None
        normalized = re.sub(r"[\s_]+", "-", value.strip().lower())
        return ACTION_TYPE_SYNONYMS.get(normalized)

    def _from_dict(self, data: dict) -> ParsedAction | None:
        action_type = self.normalize_action_type(data.get("type", data.get("action")))
        if action_type is None:
            logger.debug("unknown_action_type", raw_type=data.get("type"))
            return None

        target = data.get("target")
        description = data.get("description")

        return ParsedAction(
            type=action_type,
            description=_as_text(description)
            if description
            else self._generate_description(action_type, data),
            target=_as_text(target) if target not in (None, "") else None,
            coordinates=self._parse_coordinates(data),
            params=self._parse_params(action_type, data),
            confidence=_clamp_confidence(data.get("confidence")),
        )

    def _parse_coordinates(self, data: dict) -> Coordinates | None:
        coords = data.get("coordinates")
        if isinstance(coords, dict):
            return Coordinates(x=coerce_int(coords.get("x")), y=coerce_int(coords.get("y")))
        if isinstance(coords, (list, tuple)) and len(coords) == 2:
            return Coordinates(x=coerce_int(coords[0]), y=coerce_int(coords[1]))

        if data.get("x") is not None and data.get("y") is not None:
            return Coordinates(x=coerce_int(data["x"]), y=coerce_int(data["y"]))

        params = data.get("params")
        if isinstance(params, dict) and params.get("x") is not None and params.get("y") is not None:
            return Coordinates(x=coerce_int(params["x"]), y=coerce_int(params["y"]))

        return None

    def _parse_params(self, action_type: ActionType, data: dict) -> dict[str, Any]:
        params = data.get("params")
        if not isinstance(params, dict):
            params = {}

        match action_type:
            case ActionType.TYPE:
                return {"text": _as_text(_first(data, params, "text"))}
            case ActionType.PRESS:
                return {"key": _as_text(_first(data, params, "key"))}
            case ActionType.HOTKEY:
                keys = _first(data, params, "keys")
                if isinstance(keys, str):
                    keys = [k.strip() for k in keys.split("+") if k.strip()]
                return {"keys": _as_str_list(keys)}
            case ActionType.SCROLL:
                return {
                    "direction": _as_text(_first(data, params, "direction")) or "down",
                    "amount": coerce_int(_first(data, params, "amount"), 3) or 3,
                }
            case ActionType.WAIT:
                return {
                    "duration": coerce_int(_first(data, params, "duration"), 1000) or 1000
                }
            case ActionType.NAVIGATE:
                return {
                    "url": _as_text(_first(data, params, "url")),
                    "app": _as_text(_first(data, params, "app")),
                }
            case ActionType.DRAG:
                end = _first(data, params, "end_coordinates", "endCoordinates")
                if isinstance(end, dict):
                    end = {"x": coerce_int(end.get("x")), "y": coerce_int(end.get("y"))}
                else:
                    end = None
                return {"end_coordinates": end}
            case _:
                return dict(params)

    def _generate_description(self, action_type: ActionType, data: dict) -> str:
        params = data.get("params") if isinstance(data.get("params"), dict) else {}
        target = data.get("target") or "element"

        match action_type:
            case ActionType.CLICK:
                return f"Click on {target}"
            case ActionType.DOUBLE_CLICK:
                return f"Double-click on {target}"
            case ActionType.RIGHT_CLICK:
                return f"Right-click on {target}"
            case ActionType.TYPE:
                return f'Type "{_as_text(_first(data, params, "text"))}"'
            case ActionType.PRESS:
                return f"Press {_first(data, params, 'key') or 'key'}"
            case ActionType.HOTKEY:
                keys = _first(data, params, "keys")
                if isinstance(keys, list):
                    keys = "+".join(str(k) for k in keys)
                return f"Press {keys or 'shortcut'}"
            case ActionType.SCROLL:
                return f"Scroll {_first(data, params, 'direction') or 'down'}"
            case ActionType.WAIT:
                return f"Wait {_first(data, params, 'duration') or 1000}ms"
            case ActionType.NAVIGATE:
                return f"Navigate to {_first(data, params, 'url', 'app') or 'target'}"
            case ActionType.DRAG:
                return f"Drag {data.get('target') or 'element'} to destination"
            case ActionType.HOVER:
                return f"Hover over {target}"
        return f"Perform {action_type.value} action"

    def _parse_natural_language(self, text: str) -> ParsedAction | None:
        """Heuristic fallback when the model answered in prose."""
        if not isinstance(text, str) or not text.strip():
            return None

        lower = text.lower()

        if re.search(r"\b(?:click|tap)\b", lower):
            match = re.search(
                r"\b(?:click|tap)(?:\s+on)?\s+(?:the\s+)?[\"'“]?([^\"'”\n.,;!]+)",
                text,
                re.IGNORECASE,
            )
            target = match.group(1).strip() if match else None
            return ParsedAction(
                type=ActionType.CLICK,
                description=f"Click on {target or 'element'}",
                target=target or None,
                confidence=HEURISTIC_CONFIDENCE,
            )

        match = re.search(r"\bpress\s+(?:the\s+)?([a-z0-9+]+)(?:\s+key)?\b", lower)
        if match:
            key = match.group(1)
            return ParsedAction(
                type=ActionType.PRESS,
                description=f"Press {key}",
                params={"key": key},
                confidence=HEURISTIC_CONFIDENCE,
            )

        if re.search(r"\b(?:type|enter|input)\b", lower):
            match = re.search(
                r"\b(?:type|enter|input)\s+[\"'“](.+?)[\"'”]", text, re.IGNORECASE
            )
            typed = match.group(1) if match else ""
            return ParsedAction(
                type=ActionType.TYPE,
                description=f'Type "{typed}"',
                params={"text": typed},
                confidence=HEURISTIC_CONFIDENCE,
            )

        if re.search(r"\bscroll\b", lower):
            direction = "up" if re.search(r"\bup\b", lower) else "down"
            return ParsedAction(
                type=ActionType.SCROLL,
                description=f"Scroll {direction}",
                params={"direction": direction, "amount": 3},
                confidence=HEURISTIC_CONFIDENCE,
            )

        if re.search(r"\b(?:open|go to|navigate|launch)\b", lower):
            match = re.search(
                r"\b(?:open|go to|navigate to|navigate|launch)\s+[\"'“]?([^\s\"'”,;]+)",
                text,
                re.IGNORECASE,
            )
            target = match.group(1).rstrip(".!") if match else ""
            is_url = target.lower().startswith("http")
            return ParsedAction(
                type=ActionType.NAVIGATE,
                description=f"Navigate to {target or 'target'}",
                target=target or None,
                params={"url": target if is_url else "", "app": "" if is_url else target},
                confidence=HEURISTIC_CONFIDENCE,
            )

        logger.debug("no_action_in_text", response_preview=text[:200])
        return None

    @staticmethod
    def _looks_complete(text: str) -> bool:
        lower = text.lower()
        if not re.search(r"\b(?:complete|completed|done|finished)\b", lower):
            return False
        return not re.search(r"\b(?:not|isn't|hasn't|yet|incomplete)\b|n't\b", lower)
