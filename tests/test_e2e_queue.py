"""End-to-end: queue -> provider -> storage -> title generation."""

from __future__ import annotations

import pytest

from conftest import activate_ollama
from promptory.schemas.events import ResponseCompleteEvent, TitleStatusEvent

pytestmark = pytest.mark.e2e


def _drain(queue) -> list:
    events = []
    while not queue.empty():
        events.append(queue.get_nowait())
    return events


async def test_testing_123_with_title(service, fake_ollama):
    await activate_ollama(service)
    async with service.events.subscribe() as events:
        request_id = await service.llm_call("P", "Prompt P", "Reply with {{phrase}}", {"phrase": "TESTING 123"})
        await service.processor.wait_idle()
        received = _drain(events)

    assert fake_ollama.generate_prompts() == ["Reply with TESTING 123"]

    history = await service.llm_get_history("P")
    assert len(history) == 1
    entry = history[0]
    assert entry.status == "completed"
    assert entry.token_usage.total == 17
    assert entry.parameters == {"phrase": "TESTING 123"}

    response = await service.llm_get_response(entry.id)
    assert response.content == "TESTING 123"
    assert response.title.status == "completed"
    assert response.title.generated_title == "Testing Output Verification Response"

    fm = await service.storage.read_front_matter(entry.file_path)
    assert fm["prompt"] == "Reply with TESTING 123"
    assert fm["title_generation_status"] == "completed"

    [complete] = [e for e in received if isinstance(e, ResponseCompleteEvent)]
    assert complete.request_id == request_id
    assert complete.response_id == entry.id
    titles = [e for e in received if isinstance(e, TitleStatusEvent)]
    assert [e.status for e in titles] == ["pending", "completed"]


async def test_testing_123_with_title_fallback(service, fake_ollama):
    await activate_ollama(service)
    fake_ollama.title_status = 500
    await service.llm_call("P", "Prompt P", "Reply with TESTING 123")
    await service.processor.wait_idle()

    [entry] = await service.llm_get_history("P")
    assert entry.status == "completed"
    assert entry.title.status == "failed"
    response = await service.llm_get_response(entry.id)
    assert response.content == "TESTING 123"


async def test_delete_after_call_removes_file(service):
    await activate_ollama(service)
    await service.llm_call("P", "Prompt P", "hello")
    await service.processor.wait_idle()
    [entry] = await service.llm_get_history("P")
    path = service.storage.results_dir / entry.file_path
    assert path.exists()

    assert await service.llm_delete_response(entry.id)
    assert not path.exists()
    assert await service.llm_get_history("P") == []
    assert await service.llm_get_response(entry.id) is None
