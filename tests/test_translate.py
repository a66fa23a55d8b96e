"""Request translation characterization tests.

These capture the exact Chat Completions shapes produced for each kind of
conversation input. Provider wire formats are consumed externally and drift
is hard to detect, so the expectations here are spelled out in full.
"""

from __future__ import annotations

from dataclasses import dataclass

import pytest

from castor.errors import ValidationError
from castor.providers.openai import ChatModel, translate_request
from castor.schema import Schema
from castor.types import (
    ChatCompleteRequest,
    Message,
    MessageRole,
    TextPart,
    Tool,
    ToolCallPart,
    ToolResultPart,
    tool_call_part,
)

pytestmark = pytest.mark.contract


def _text(text: str) -> dict[str, str]:
    return {"type": "text", "text": text}


def test_minimal_request_streams_with_usage() -> None:
    wire = translate_request(
        ChatCompleteRequest(messages=[Message.user_text("Hi")]),
        model=ChatModel.GPT_4O_MINI,
    )

    assert wire.params == {
        "model": "gpt-4o-mini",
        "messages": [{"role": "user", "content": [_text("Hi")]}],
        "stream": True,
        "stream_options": {"include_usage": True},
    }
    assert wire.tool_names == ()


def test_system_prompt_is_first_message() -> None:
    wire = translate_request(
        ChatCompleteRequest(messages=[Message.user_text("Hi")], system="Be terse."),
        model=ChatModel.GPT_4O,
    )

    assert wire.params["messages"][0] == {"role": "system", "content": "Be terse."}
    assert wire.params["messages"][1]["role"] == "user"


def test_tool_result_flushes_buffered_user_text_first() -> None:
    message = Message(
        role=MessageRole.USER,
        parts=(
            TextPart("Here is the result."),
            TextPart("And some more context."),
            ToolResultPart(id="call_1", content='{"temp": 21}', name="weather"),
            TextPart("Anything else?"),
        ),
    )

    wire = translate_request(ChatCompleteRequest(messages=[message]), model=ChatModel.GPT_4O)

    assert wire.params["messages"] == [
        {
            "role": "user",
            "content": [_text("Here is the result."), _text("And some more context.")],
        },
        {"role": "tool", "tool_call_id": "call_1", "content": '{"temp": 21}'},
        {"role": "user", "content": [_text("Anything else?")]},
    ]


def test_tool_result_without_buffered_text_emits_no_empty_message() -> None:
    wire = translate_request(
        ChatCompleteRequest(
            messages=[Message.user_tool_result(ToolResultPart(id="call_1", content="ok"))]
        ),
        model=ChatModel.GPT_4O,
    )

    assert wire.params["messages"] == [
        {"role": "tool", "tool_call_id": "call_1", "content": "ok"}
    ]


def test_tool_result_name_is_not_sent() -> None:
    result = ToolResultPart(id="call_1", content="ok", name="weather")

    wire = translate_request(
        ChatCompleteRequest(messages=[Message.user_tool_result(result)]),
        model=ChatModel.GPT_4O,
    )

    assert set(wire.params["messages"][0]) == {"role", "tool_call_id", "content"}


@pytest.mark.parametrize("error", [RuntimeError("city not found"), "city not found"])
def test_tool_result_error_replaces_content(error: BaseException | str) -> None:
    result = ToolResultPart(id="call_1", content="ignored", error=error)

    wire = translate_request(
        ChatCompleteRequest(messages=[Message.user_tool_result(result)]),
        model=ChatModel.GPT_4O,
    )

    assert wire.params["messages"] == [
        {"role": "tool", "tool_call_id": "call_1", "content": "Error: city not found"}
    ]


def test_tool_call_flushes_buffered_assistant_text_first() -> None:
    message = Message(
        role=MessageRole.MODEL,
        parts=(
            TextPart("Checking the weather."),
            tool_call_part("call_1", "weather", {"city": "Oslo"}),
            ToolCallPart(id="call_2", name="time", arguments='{"tz":"CET"}'),
        ),
    )

    wire = translate_request(ChatCompleteRequest(messages=[message]), model=ChatModel.GPT_4O)

    assert wire.params["messages"] == [
        {"role": "assistant", "content": [_text("Checking the weather.")]},
        {
            "role": "assistant",
            "tool_calls": [
                {
                    "id": "call_1",
                    "type": "function",
                    "function": {"name": "weather", "arguments": '{"city": "Oslo"}'},
                }
            ],
        },
        {
            "role": "assistant",
            "tool_calls": [
                {
                    "id": "call_2",
                    "type": "function",
                    "function": {"name": "time", "arguments": '{"tz":"CET"}'},
                }
            ],
        },
    ]


def test_conversation_order_is_preserved() -> None:
    messages = [
        Message.user_text("What's 2+2?"),
        Message.model_text("4"),
        Message.user_text("Thanks"),
    ]

    wire = translate_request(ChatCompleteRequest(messages=messages), model=ChatModel.GPT_4O)

    assert [(m["role"], m["content"][0]["text"]) for m in wire.params["messages"]] == [
        ("user", "What's 2+2?"),
        ("assistant", "4"),
        ("user", "Thanks"),
    ]


def test_unsupported_part_for_role_raises_validation_error() -> None:
    user_with_call = Message(
        role=MessageRole.USER, parts=(ToolCallPart(id="c", name="f", arguments="{}"),)
    )
    model_with_result = Message(
        role=MessageRole.MODEL, parts=(ToolResultPart(id="c", content="x"),)
    )

    with pytest.raises(ValidationError, match="user message"):
        translate_request(ChatCompleteRequest(messages=[user_with_call]), model=ChatModel.GPT_4O)
    with pytest.raises(ValidationError, match="model message"):
        translate_request(
            ChatCompleteRequest(messages=[model_with_result]), model=ChatModel.GPT_4O
        )


def test_unknown_role_raises_validation_error() -> None:
    @dataclass(frozen=True)
    class _Odd:
        role: str
        parts: tuple = ()

    request = ChatCompleteRequest(messages=[_Odd(role="system")])  # type: ignore[list-item]

    with pytest.raises(ValidationError, match="Unknown message role"):
        translate_request(request, model=ChatModel.GPT_4O)


def test_tools_are_normalized_and_names_sorted() -> None:
    tools = [
        Tool(
            name="weather",
            description="Current weather for a city",
            schema=Schema(
                properties={
                    "city": Schema(type="STRING", description="City name"),
                    "days": Schema(type="Integer", minimum=1, maximum=7),
                }
            ),
        ),
        Tool(name="clock", description="Current time", schema=Schema()),
    ]

    wire = translate_request(
        ChatCompleteRequest(messages=[Message.user_text("Hi")], tools=tools),
        model=ChatModel.GPT_4O,
    )

    assert wire.params["tools"] == [
        {
            "type": "function",
            "function": {
                "name": "weather",
                "description": "Current weather for a city",
                "parameters": {
                    "type": "object",
                    "properties": {
                        "city": {"type": "string", "description": "City name"},
                        "days": {"type": "integer", "minimum": 1.0, "maximum": 7.0},
                    },
                },
            },
        },
        {
            "type": "function",
            "function": {
                "name": "clock",
                "description": "Current time",
                "parameters": {"type": "object", "properties": {}},
            },
        },
    ]
    assert wire.tool_names == ("clock", "weather")


def test_translation_does_not_mutate_tool_schema() -> None:
    schema = Schema(properties={"city": Schema(type="STRING")})
    tool = Tool(name="weather", description="", schema=schema)

    translate_request(
        ChatCompleteRequest(messages=[Message.user_text("Hi")], tools=[tool]),
        model=ChatModel.GPT_4O,
    )

    assert schema.properties is not None
    assert schema.properties["city"].type == "STRING"


def test_temperature_passes_through_as_float() -> None:
    wire = translate_request(
        ChatCompleteRequest(messages=[Message.user_text("Hi")], temperature=1),
        model=ChatModel.GPT_4O,
    )

    assert wire.params["temperature"] == 1.0
    assert isinstance(wire.params["temperature"], float)


def test_response_schema_becomes_strict_json_schema_format() -> None:
    schema = Schema(
        title="Weather Report!",
        description="A short report",
        type="OBJECT",
        properties={
            "summary": Schema(type="STRING"),
            "hours": Schema(
                type="ARRAY",
                items=Schema(type="OBJECT", properties={"temp": Schema(type="NUMBER")}),
            ),
        },
        required=["summary", "hours"],
    )

    wire = translate_request(
        ChatCompleteRequest(messages=[Message.user_text("Hi")], response_schema=schema),
        model=ChatModel.GPT_4O,
    )

    assert wire.params["response_format"] == {
        "type": "json_schema",
        "json_schema": {
            "name": "Weather_Report",
            "strict": True,
            "description": "A short report",
            "schema": {
                "title": "Weather Report!",
                "description": "A short report",
                "type": "object",
                "properties": {
                    "summary": {"type": "string"},
                    "hours": {
                        "type": "array",
                        "items": {
                            "type": "object",
                            "properties": {"temp": {"type": "number"}},
                            "additionalProperties": False,
                        },
                    },
                },
                "required": ["summary", "hours"],
                "additionalProperties": False,
            },
        },
    }


def test_response_schema_without_description_or_title() -> None:
    wire = translate_request(
        ChatCompleteRequest(
            messages=[Message.user_text("Hi")], response_schema=Schema(type="string")
        ),
        model=ChatModel.GPT_4O,
    )

    assert wire.params["response_format"]["json_schema"] == {
        "name": "response",
        "strict": True,
        "schema": {"type": "string"},
    }
