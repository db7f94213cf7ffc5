import asyncio

import pytest

from conftest import PNG_RESULT, FakeUpload, StubEditor, fake_genai_client, gemini_response
from edit_session import FALLBACK_ERROR, NO_IMAGE_ERROR, EditSession
from encoder import read_image
from failures import FailureKind, InvalidInputError, TransportError
from gemini_service import GeminiImageEditor
from models import GenerationOutcome, SessionState


def ready_session(record, editor=None, prompt="Remove the background"):
    session = EditSession(editor or StubEditor(outcome=PNG_RESULT))
    assert session.load_image(record)
    session.set_prompt(prompt)
    return session


def test_starts_idle():
    session = EditSession(StubEditor())
    snap = session.snapshot()

    assert session.state is SessionState.IDLE
    assert snap["image"] is None and snap["result"] is None and snap["error"] is None
    assert snap["can_submit"] is False


def test_image_selected_moves_to_ready(jpeg_record):
    session = EditSession(StubEditor())

    assert session.load_image(jpeg_record)
    assert session.state is SessionState.READY_TO_EDIT
    assert session.image is jpeg_record


def test_second_upload_ignored_outside_idle(jpeg_record):
    session = ready_session(jpeg_record)
    other = jpeg_record.from_bytes(b"\x89PNG", "image/png")

    assert not session.load_image(other)
    assert session.image is jpeg_record


def test_prompt_not_stored_while_idle():
    session = EditSession(StubEditor())
    assert not session.set_prompt("hello")
    assert session.prompt == ""


@pytest.mark.parametrize("prompt", ["", "   ", "\n\t"])
def test_blank_prompt_never_calls_editor(run, jpeg_record, prompt):
    editor = StubEditor(outcome=PNG_RESULT)
    session = ready_session(jpeg_record, editor, prompt=prompt)

    assert run(session.submit()) is False
    assert editor.calls == []
    assert session.state is SessionState.READY_TO_EDIT


def test_submit_without_image_is_noop(run):
    editor = StubEditor(outcome=PNG_RESULT)
    session = EditSession(editor)

    assert run(session.submit("Remove the background")) is False
    assert editor.calls == []
    assert session.state is SessionState.IDLE


def test_successful_generation_completes(run, jpeg_record):
    editor = StubEditor(outcome=GenerationOutcome(image_url=PNG_RESULT.image_url, note="Done"))
    session = ready_session(jpeg_record, editor)

    assert run(session.submit())
    assert session.state is SessionState.COMPLETED
    assert session.outcome.image_url == PNG_RESULT.image_url
    assert session.snapshot()["note"] == "Done"
    assert editor.calls == [(jpeg_record, "Remove the background")]


def test_submit_prompt_argument_is_stored(run, jpeg_record):
    editor = StubEditor(outcome=PNG_RESULT)
    session = ready_session(jpeg_record, editor, prompt="")

    assert run(session.submit("Add a soft studio lighting effect"))
    assert session.prompt == "Add a soft studio lighting effect"
    assert editor.calls[0][1] == "Add a soft studio lighting effect"


def test_rejection_message_is_kept(run, jpeg_record):
    session = ready_session(jpeg_record, StubEditor(error=TransportError("quota exceeded")), prompt="xyz")

    run(session.submit())

    assert session.state is SessionState.FAILED
    assert session.error.message == "quota exceeded"
    assert session.snapshot()["error"] == {"kind": "transport", "message": "quota exceeded"}


def test_untyped_exception_still_fails_session(run, jpeg_record):
    session = ready_session(jpeg_record, StubEditor(error=RuntimeError("quota exceeded")), prompt="xyz")

    run(session.submit())

    assert session.state is SessionState.FAILED
    assert str(session.error) == "quota exceeded"


def test_empty_message_uses_fallback(run, jpeg_record):
    session = ready_session(jpeg_record, StubEditor(error=TransportError("")))

    run(session.submit())

    assert session.error.message == FALLBACK_ERROR
    assert session.error.kind is FailureKind.TRANSPORT


def test_note_without_image_is_a_failure(run, jpeg_record):
    editor = StubEditor(outcome=GenerationOutcome(note="I cannot do that."))
    session = ready_session(jpeg_record, editor)

    run(session.submit())

    assert session.state is SessionState.FAILED
    assert session.error.kind is FailureKind.EMPTY_RESULT
    assert session.error.message == NO_IMAGE_ERROR
    assert session.outcome is None
    assert session.snapshot()["note"] == "I cannot do that."


def test_resubmit_after_failure_supersedes_error(run, jpeg_record):
    editor = StubEditor(error=TransportError("boom"))
    session = ready_session(jpeg_record, editor)
    run(session.submit())
    assert session.state is SessionState.FAILED

    editor.error = None
    editor.outcome = PNG_RESULT
    run(session.submit())

    assert session.state is SessionState.COMPLETED
    assert session.error is None


def test_resubmit_after_completion_replaces_outcome(run, jpeg_record):
    first = GenerationOutcome(image_url="data:image/png;base64,AAAA")
    editor = StubEditor(outcome=first)
    session = ready_session(jpeg_record, editor)
    run(session.submit())

    editor.outcome = PNG_RESULT
    session.set_prompt("Make it look like a vintage photo")
    run(session.submit())

    assert session.outcome is PNG_RESULT
    assert len(editor.calls) == 2


@pytest.mark.parametrize("ending", ["idle", "ready", "processing", "completed", "failed"])
def test_reset_returns_to_clean_idle(run, jpeg_record, ending):
    async def scenario():
        gate = asyncio.Event()
        editor = StubEditor(outcome=PNG_RESULT, gate=gate)
        session = EditSession(editor)
        task = None
        if ending != "idle":
            session.load_image(jpeg_record)
            session.set_prompt("Remove the background")
        if ending == "processing":
            task = asyncio.create_task(session.submit())
            await asyncio.sleep(0)
        elif ending in ("completed", "failed"):
            if ending == "failed":
                editor.error = TransportError("nope")
            gate.set()
            await session.submit()

        session.reset()
        gate.set()
        if task is not None:
            await task
        return session

    session = run(scenario())

    assert session.state is SessionState.IDLE
    assert session.image is None
    assert session.prompt == ""
    assert session.outcome is None
    assert session.error is None
    assert session.note is None


def test_submit_while_processing_is_noop(run, jpeg_record):
    async def scenario():
        gate = asyncio.Event()
        editor = StubEditor(outcome=PNG_RESULT, gate=gate)
        session = ready_session(jpeg_record, editor)

        first = asyncio.create_task(session.submit())
        await asyncio.sleep(0)
        assert session.state is SessionState.PROCESSING
        assert session.snapshot()["busy"] is True

        second = await session.submit("Something else")
        gate.set()
        await first
        return session, editor, second

    session, editor, second = run(scenario())

    assert second is False
    assert len(editor.calls) == 1
    assert session.prompt == "Remove the background"
    assert session.state is SessionState.COMPLETED


def test_result_arriving_after_reset_is_dropped(run, jpeg_record):
    async def scenario():
        gate = asyncio.Event()
        session = ready_session(jpeg_record, StubEditor(outcome=PNG_RESULT, gate=gate))

        task = asyncio.create_task(session.submit())
        await asyncio.sleep(0)
        session.reset()
        gate.set()
        await task
        return session

    session = run(scenario())

    assert session.state is SessionState.IDLE
    assert session.outcome is None


def test_failure_arriving_after_reset_is_dropped(run, jpeg_record):
    async def scenario():
        gate = asyncio.Event()
        session = ready_session(jpeg_record, StubEditor(error=TransportError("late"), gate=gate))

        task = asyncio.create_task(session.submit())
        await asyncio.sleep(0)
        session.reset()
        gate.set()
        await task
        return session

    session = run(scenario())

    assert session.state is SessionState.IDLE
    assert session.error is None


def test_stale_reply_from_earlier_session_ignored(run, jpeg_record):
    """A reply from before a reset must not land in the next session's request."""

    class TwoReplies:
        def __init__(self):
            self.gates = []

        async def generate(self, image, prompt):
            gate = asyncio.Event()
            self.gates.append(gate)
            await gate.wait()
            return GenerationOutcome(image_url=f"data:image/png;base64,{prompt}")

    async def scenario():
        editor = TwoReplies()
        session = ready_session(jpeg_record, editor, prompt="AAAA")
        old = asyncio.create_task(session.submit())
        await asyncio.sleep(0)

        session.reset()
        session.load_image(jpeg_record)
        new = asyncio.create_task(session.submit("BBBB"))
        await asyncio.sleep(0)

        editor.gates[0].set()
        await old
        assert session.state is SessionState.PROCESSING

        editor.gates[1].set()
        await new
        return session

    session = run(scenario())

    assert session.state is SessionState.COMPLETED
    assert session.outcome.image_url.endswith("BBBB")


def test_upload_then_edit_end_to_end(run, jpeg_bytes):
    png = b"\x89PNG\r\n\x1a\n"
    from google.genai import types

    client, _ = fake_genai_client(gemini_response(
        types.Part(inline_data=types.Blob(data=png, mime_type="image/png")),
    ))
    session = EditSession(GeminiImageEditor(client))

    run(read_image(FakeUpload(jpeg_bytes, "image/jpeg"), on_loaded=session.load_image))
    assert session.state is SessionState.READY_TO_EDIT
    assert session.image.data_url.startswith("data:image/jpeg;base64,")

    session.set_prompt("Remove the background")
    run(session.submit())

    assert session.state is SessionState.COMPLETED
    assert session.outcome.image_url.startswith("data:image/png;base64,")


@pytest.mark.parametrize("prompt", [123, ["a", "b"], 4.5])
def test_non_text_prompt_rejected(jpeg_record, prompt):
    session = ready_session(jpeg_record, prompt="Remove the background")

    with pytest.raises(InvalidInputError):
        session.set_prompt(prompt)

    assert session.prompt == "Remove the background"
    assert session.snapshot()["can_submit"] is True
