from draft_assistant.events import CANCELLED, END, START, StreamEvent
from draft_assistant.step_runner import Step, StepRunner


def test_steps_run_in_order_with_skip_rules():
    calls = []
    runner = StepRunner(
        [
            Step("first", lambda ctx: calls.append("first")),
            Step("skipped", lambda ctx: calls.append("skipped"), skip_if=lambda ctx: True),
            Step("forced", lambda ctx: calls.append("forced"), skip_if=lambda ctx: True, always_run=True),
        ]
    )
    runner.run(object())
    assert calls == ["first", "forced"]
    assert runner.step_names == ["first", "skipped", "forced"]


def test_stream_event_encoding():
    frame = StreamEvent(START, {"text": "é\nà"}).encode()
    assert frame == 'event: start\ndata: {"text": "é\\nà"}\n\n'
    assert StreamEvent(END).is_terminal
    assert StreamEvent(CANCELLED).is_terminal
    assert not StreamEvent(START).is_terminal
