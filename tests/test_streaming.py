from termagent.llms import ToolCallDelta
from termagent.llms.streaming import REPLACEMENT_CHARACTER, SurrogateDecoder, ToolCallAccumulator

GRINNING = "\U0001f600"
HIGH, LOW = "\ud83d", "\ude00"


def test_plain_text_passes_through():
    decoder = SurrogateDecoder()

    assert decoder.feed("hello ") == "hello "
    assert decoder.feed("") == ""
    assert decoder.feed("world") == "world"
    assert decoder.flush() == ""


def test_split_pair_is_joined():
    decoder = SurrogateDecoder()

    assert decoder.feed("a" + HIGH) == "a"
    assert decoder.feed(LOW + "b") == GRINNING + "b"
    assert decoder.flush() == ""


def test_pair_inside_chunk_is_joined():
    assert SurrogateDecoder().feed("x" + HIGH + LOW + "y") == "x" + GRINNING + "y"


def test_unmatched_high_surrogate_is_replaced():
    decoder = SurrogateDecoder()

    assert decoder.feed("a" + HIGH) == "a"
    assert decoder.feed("b") == REPLACEMENT_CHARACTER + "b"


def test_pending_half_flushes_to_one_replacement():
    decoder = SurrogateDecoder()

    assert decoder.feed(HIGH) == ""
    assert decoder.flush() == REPLACEMENT_CHARACTER
    assert decoder.flush() == ""


def test_stray_low_surrogate_is_replaced():
    assert SurrogateDecoder().feed(LOW + "z") == REPLACEMENT_CHARACTER + "z"


def test_accumulator_merges_by_index():
    accumulator = ToolCallAccumulator()
    assert not accumulator

    accumulator.add(ToolCallDelta(index=1, id="call_b", name="search", arguments_delta='{"pattern"'))
    accumulator.add(ToolCallDelta(index=0, id="call_a", name="run_command", arguments_delta="{}"))
    accumulator.add(ToolCallDelta(index=1, arguments_delta=': "x"}'))

    requests = accumulator.requests()
    assert accumulator
    assert [(r.stream_index, r.id, r.name, r.arguments_json) for r in requests] == [
        (1, "call_b", "search", '{"pattern": "x"}'),
        (0, "call_a", "run_command", "{}"),
    ]


def test_accumulator_generates_missing_ids():
    accumulator = ToolCallAccumulator()
    accumulator.add(ToolCallDelta(index=0, name="workflow_done"))

    (request,) = accumulator.requests()
    assert request.id.startswith("call_")
    assert request.arguments_json == ""
