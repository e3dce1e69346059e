"""Unit tests for ActionParser module."""

import json

import pytest

from helmsman.core.types import ActionType, ParsedAction
from helmsman.parser.action_parser import (
    HEURISTIC_CONFIDENCE,
    MAX_LITERAL_STARTS,
    ActionParser,
    coerce_int,
    extract_json,
)


@pytest.fixture
def parser() -> ActionParser:
    return ActionParser()


class TestExtractJson:
    """Test suite for extract_json helper."""

    def test_whole_text_is_json(self) -> None:
        """Test that plain JSON is decoded directly."""
        assert extract_json('{"type": "click"}') == {"type": "click"}

    def test_fenced_code_block(self) -> None:
        """Test that a fenced json block is preferred over prose."""
        text = 'Here you go:\n```json\n{"type": "wait"}\n```\nGood luck!'
        assert extract_json(text) == {"type": "wait"}

    def test_object_embedded_in_prose(self) -> None:
        """Test that the first balanced object is found inside prose."""
        text = 'I will click it: {"type": "click", "target": "OK {button}"} then stop.'
        assert extract_json(text) == {"type": "click", "target": "OK {button}"}

    def test_array_embedded_in_prose(self) -> None:
        """Test that an array is found when there is no object."""
        assert extract_json('Steps: ["open", "search"] done') == ["open", "search"]

    def test_no_json_returns_none(self) -> None:
        """Test that prose without JSON yields None."""
        assert extract_json("just words here") is None
        assert extract_json("") is None

    def test_skips_broken_object_for_later_valid_one(self) -> None:
        """Test that an unparseable leading object does not hide a later one."""
        text = '{not json} and then {"found": true}'
        assert extract_json(text) == {"found": True}

    def test_unbalanced_braces_give_up(self) -> None:
        """Test a long run of unmatched brackets yields None."""
        assert extract_json("{" * 20_000) is None
        assert extract_json("[" * 20_000) is None

    def test_valid_object_after_a_few_broken_ones(self) -> None:
        """Test the bracket scan still reaches an object behind broken ones."""
        text = "{oops} " * (MAX_LITERAL_STARTS - 1) + '{"type": "wait"}'
        assert extract_json(text) == {"type": "wait"}


class TestCoerceInt:
    """Test suite for coerce_int helper."""

    @pytest.mark.parametrize(
        "value,expected",
        [(12, 12), (12.9, 12), ("42", 42), ("42px", 42), (" -7 ", -7), ("3.5", 3)],
    )
    def test_lenient_values(self, value, expected) -> None:
        """Test numeric strings and floats are read leniently."""
        assert coerce_int(value) == expected

    def test_garbage_uses_default(self) -> None:
        """Test unreadable values fall back to the default."""
        assert coerce_int("left", 5) == 5
        assert coerce_int(None, 9) == 9
        assert coerce_int(float("nan"), 1) == 1


class TestParseAction:
    """Test suite for ActionParser.parse_action."""

    def test_parses_click_with_coordinates(self, parser: ActionParser) -> None:
        """Test a fully specified click."""
        response = json.dumps({
            "type": "click",
            "description": "Click the Search button",
            "target": "Search button",
            "coordinates": {"x": "640", "y": 360.7},
            "confidence": 0.9,
        })

        action = parser.parse_action(response)

        assert action is not None
        assert action.type == ActionType.CLICK
        assert action.description == "Click the Search button"
        assert action.target == "Search button"
        assert action.coordinates.x == 640
        assert action.coordinates.y == 360
        assert action.confidence == 0.9

    def test_type_synonyms_are_normalized(self, parser: ActionParser) -> None:
        """Test loose type spellings map onto the closed set."""
        assert parser.parse_action('{"type": "double_click", "target": "icon"}').type == ActionType.DOUBLE_CLICK
        assert parser.parse_action('{"type": "Right Click", "target": "file"}').type == ActionType.RIGHT_CLICK
        assert parser.parse_action('{"action": "shortcut", "keys": "ctrl+c"}').type == ActionType.HOTKEY

    def test_unknown_type_returns_none(self, parser: ActionParser) -> None:
        """Test that an unknown action type is rejected."""
        assert parser.parse_action('{"type": "teleport"}') is None

    def test_description_is_generated_when_missing(self, parser: ActionParser) -> None:
        """Test generated descriptions."""
        action = parser.parse_action('{"type": "type", "params": {"text": "weather"}}')

        assert action.description == 'Type "weather"'
        assert action.params == {"text": "weather"}

    def test_confidence_defaults_and_clamps(self, parser: ActionParser) -> None:
        """Test confidence default and clamping to [0, 1]."""
        assert parser.parse_action('{"type": "wait"}').confidence == 0.5
        assert parser.parse_action('{"type": "wait", "confidence": 7}').confidence == 1.0
        assert parser.parse_action('{"type": "wait", "confidence": -1}').confidence == 0.0
        assert parser.parse_action('{"type": "wait", "confidence": "high"}').confidence == 0.5

    def test_scroll_and_wait_defaults(self, parser: ActionParser) -> None:
        """Test default params for scroll and wait."""
        scroll = parser.parse_action('{"type": "scroll"}')
        wait = parser.parse_action('{"type": "wait"}')

        assert scroll.params == {"direction": "down", "amount": 3}
        assert wait.params == {"duration": 1000}

    def test_hotkey_string_is_split(self, parser: ActionParser) -> None:
        """Test hotkey strings joined with + become a key list."""
        action = parser.parse_action('{"type": "hotkey", "params": {"keys": "Ctrl + Shift + T"}}')

        assert action.params["keys"] == ["Ctrl", "Shift", "T"]

    def test_drag_end_coordinates(self, parser: ActionParser) -> None:
        """Test drag destinations in camelCase."""
        action = parser.parse_action(
            '{"type": "drag", "coordinates": [10, 20], "params": {"endCoordinates": {"x": 300, "y": "400"}}}'
        )

        assert action.coordinates.x == 10
        assert action.params["end_coordinates"] == {"x": 300, "y": 400}

    def test_navigate_params(self, parser: ActionParser) -> None:
        """Test navigate keeps url and app."""
        action = parser.parse_action('{"type": "navigate", "params": {"app": "Chrome"}}')

        assert action.params == {"url": "", "app": "Chrome"}
        assert action.description == "Navigate to Chrome"

    def test_params_are_read_only(self, parser: ActionParser) -> None:
        """Test a parsed action cannot be changed through its params."""
        action = parser.parse_action('{"type": "type", "params": {"text": "weather"}}')

        with pytest.raises(TypeError):
            action.params["text"] = "rm -rf /"

        assert action.params == {"text": "weather"}
        assert action.model_dump()["params"] == {"text": "weather"}
        assert ParsedAction(type=ActionType.WAIT, description="Wait").params == {}

    def test_fenced_json_with_prose(self, parser: ActionParser) -> None:
        """Test a typical chatty model answer."""
        response = 'Next I will press enter.\n```json\n{"type": "press", "params": {"key": "Enter"}}\n```'

        action = parser.parse_action(response)

        assert action.type == ActionType.PRESS
        assert action.params["key"] == "Enter"


class TestNaturalLanguageFallback:
    """Test suite for the prose heuristics."""

    def test_click_target(self, parser: ActionParser) -> None:
        """Test a click sentence yields a low-confidence click."""
        action = parser.parse_action('I should click on the "Sign in" button.')

        assert action.type == ActionType.CLICK
        assert action.target == "Sign in"
        assert action.confidence == HEURISTIC_CONFIDENCE

    def test_type_quoted_text(self, parser: ActionParser) -> None:
        """Test typing quoted text."""
        action = parser.parse_action("Type 'weather today' into the search box")

        assert action.type == ActionType.TYPE
        assert action.params["text"] == "weather today"

    def test_press_key(self, parser: ActionParser) -> None:
        """Test a key press sentence."""
        action = parser.parse_action("Now press the enter key")

        assert action.type == ActionType.PRESS
        assert action.params["key"] == "enter"

    def test_scroll_up(self, parser: ActionParser) -> None:
        """Test scroll direction detection."""
        action = parser.parse_action("Let's scroll up a bit")

        assert action.type == ActionType.SCROLL
        assert action.params["direction"] == "up"

    def test_open_url_and_app(self, parser: ActionParser) -> None:
        """Test navigate heuristics split urls from app names."""
        url_action = parser.parse_action("Go to https://example.com now")
        app_action = parser.parse_action("Open Chrome")

        assert url_action.params["url"] == "https://example.com"
        assert app_action.params == {"url": "", "app": "Chrome"}

    def test_nothing_actionable(self, parser: ActionParser) -> None:
        """Test prose with no action verbs gives None."""
        assert parser.parse_action("I am not sure what to do here.") is None


class TestParseAnalysis:
    """Test suite for ActionParser.parse_analysis."""

    def test_camel_case_json(self, parser: ActionParser) -> None:
        """Test the documented analysis format."""
        response = json.dumps({
            "isTaskComplete": False,
            "currentState": "Google homepage",
            "visibleElements": ["search box", "logo"],
            "suggestions": ["click search box"],
        })

        analysis = parser.parse_analysis(response)

        assert analysis.is_task_complete is False
        assert analysis.current_state == "Google homepage"
        assert analysis.visible_elements == ["search box", "logo"]
        assert analysis.suggestions == ["click search box"]

    def test_string_boolean(self, parser: ActionParser) -> None:
        """Test "true" strings count as complete."""
        assert parser.parse_analysis('{"is_task_complete": "true"}').is_task_complete is True

    def test_prose_complete(self, parser: ActionParser) -> None:
        """Test heuristic completion from prose."""
        analysis = parser.parse_analysis("The weather results are shown. The task is complete.")

        assert analysis.is_task_complete is True
        assert analysis.current_state.startswith("The weather results")

    def test_prose_negated_completion(self, parser: ActionParser) -> None:
        """Test negated completion words are not treated as done."""
        assert parser.parse_analysis("The task is not complete yet.").is_task_complete is False


class TestParseLocationAndMultiple:
    """Test suite for parse_location and parse_multiple_actions."""

    def test_location_found(self, parser: ActionParser) -> None:
        """Test a found location."""
        location = parser.parse_location(
            '{"found": true, "x": 120, "y": "45", "confidence": 0.8, "alternatives": [{"x": 1, "y": 2}, "junk"]}'
        )

        assert location.found is True
        assert (location.x, location.y) == (120, 45)
        assert location.alternatives == [{"x": 1, "y": 2}]

    def test_location_unparseable(self, parser: ActionParser) -> None:
        """Test garbage yields not-found."""
        assert parser.parse_location("no idea").found is False

    def test_multiple_actions_object(self, parser: ActionParser) -> None:
        """Test an actions list, skipping bad entries."""
        response = json.dumps({
            "actions": [
                {"type": "click", "target": "A"},
                {"type": "teleport"},
                "junk",
                {"type": "press", "key": "Enter"},
            ]
        })

        actions = parser.parse_multiple_actions(response)

        assert [a.type for a in actions] == [ActionType.CLICK, ActionType.PRESS]

    def test_multiple_actions_bare_array(self, parser: ActionParser) -> None:
        """Test a bare JSON array."""
        actions = parser.parse_multiple_actions('[{"type": "wait"}, {"type": "scroll"}]')

        assert len(actions) == 2

    def test_multiple_actions_single_fallback(self, parser: ActionParser) -> None:
        """Test a single object becomes a one-element list."""
        assert len(parser.parse_multiple_actions('{"type": "wait"}')) == 1
        assert parser.parse_multiple_actions("nothing") == []


MALFORMED_RESPONSES = [
    None,
    "",
    "   ",
    "[]",
    "42",
    "null",
    '"click the OK button"',
    '{"type": 5}',
    '{"type": ["click"]}',
    '{"type": "click", "confidence": NaN}',
    '{"type": "click", "confidence": Infinity}',
    '{"type": "click", "confidence": -Infinity}',
    '{"type": "click", "confidence": 1e999}',
    '{"type": "click", "confidence": ' + "9" * 400 + "}",
    '{"type": "click", "confidence": {"value": 1}}',
    '{"type": "type", "params": "oops"}',
    '{"type": "type", "text": {"nested": [1, 2]}}',
    '{"type": "click", "coordinates": {"x": [1], "y": {}}}',
    '{"type": "click", "coordinates": [1, 2, 3]}',
    '{"type": "click", "x": "' + "9" * 5000 + '", "y": 1}',
    '{"type": "hotkey", "keys": 5}',
    '{"type": "hotkey", "keys": [null, 1, "ctrl"]}',
    '{"type": "drag", "end_coordinates": [1, 2]}',
    '{"type": "scroll", "amount": "lots", "direction": 3}',
    '{"type": "wait", "duration": -5}',
    '{"type": "click", "description": ["a"], "target": {}}',
    '{"action": "open", "params": {"url": null, "app": 7}}',
    '{"a": ' * 5000 + "1" + "}" * 5000,
    "[" * 500,
    "{" * 300,
    "```json\n{broken\n```",
]


class TestParseActionNeverRaises:
    """Test suite for malformed model output."""

    @pytest.mark.parametrize("response", MALFORMED_RESPONSES)
    def test_returns_none_or_valid_action(self, parser: ActionParser, response) -> None:
        """Test malformed input never raises and never yields an invalid action."""
        action = parser.parse_action(response)

        if action is not None:
            assert isinstance(action.type, ActionType)
            assert 0.0 <= action.confidence <= 1.0
            assert isinstance(action.description, str)

    @pytest.mark.parametrize(
        "raw",
        [
            '{"type": "click", "target": "Search", "coordinates": {"x": 10, "y": 20}}',
            '{"type": "type", "params": {"text": "weather"}, "confidence": 0.9}',
            '{"type": "hotkey", "keys": "ctrl+l"}',
            '{"type": "teleport"}',
        ],
    )
    def test_fenced_and_bare_json_agree(self, parser: ActionParser, raw: str) -> None:
        """Test wrapping the JSON in a fenced block does not change the result."""
        fenced = f"```json\n{raw}\n```"

        assert parser.parse_action(raw) == parser.parse_action(fenced)
