"""Tests for the Command Dispatcher.

Validates every action against the fake page, the queue routing rules and
the concurrency properties clients rely on:

    - same-page actions never interleave
    - different pages proceed independently
    - concurrent newPage requests get distinct, correctly correlated ids
    - a page closed while an action waits fails that action explicitly
"""

import asyncio

import pytest

from shared_browser.actions.service import CommandDispatcher, async_function_source, registry, to_snake_options
from shared_browser.exceptions import PageClosedError, UnknownActionError, UnknownPageError

from conftest import FakeWorker, drain


@pytest.fixture()
def dispatcher(session):
    return CommandDispatcher(session, default_timeout_ms=1000)


def page_of(session, page_id="1"):
    return session.registry.get(page_id)


class TestActionRegistry:

    def test_closed_action_set(self):
        assert sorted(registry.names) == sorted(
            [
                "newPage",
                "goto",
                "click",
                "waitForSelector",
                "type",
                "fill",
                "evaluate",
                "screenshot",
                "closePage",
                "evaluateOnServiceWorker",
            ]
        )

    def test_camel_case_options(self):
        assert to_snake_options({"clickCount": 2, "noWaitAfter": True, "force": True}) == {
            "click_count": 2,
            "no_wait_after": True,
            "force": True,
        }
        assert to_snake_options(None) == {}

    def test_async_function_source(self):
        assert async_function_source("return 1") == "async (arg) => { return 1 }"


class TestValidation:

    @pytest.mark.asyncio
    async def test_unknown_action(self, dispatcher):
        with pytest.raises(UnknownActionError, match="Unknown action scroll"):
            await dispatcher.execute("scroll", {"pageId": "1"})

    @pytest.mark.asyncio
    async def test_unknown_page_fails_before_enqueue(self, dispatcher, session):
        with pytest.raises(UnknownPageError, match="Unknown pageId 42"):
            await dispatcher.execute("goto", {"pageId": "42", "url": "https://a.test/"})
        assert len(session.queue) == 0

    @pytest.mark.asyncio
    async def test_missing_page_id(self, dispatcher):
        with pytest.raises(UnknownPageError):
            await dispatcher.execute("screenshot", {})

    @pytest.mark.asyncio
    async def test_numeric_page_id_accepted(self, dispatcher, session):
        result = await dispatcher.execute("goto", {"pageId": 1, "url": "https://a.test/"})
        assert result == {"ok": True, "url": "https://a.test/"}

    @pytest.mark.asyncio
    async def test_fractional_page_id_is_unknown(self, dispatcher, session):
        """A fractional id is never rounded onto an existing page."""
        with pytest.raises(UnknownPageError, match="Unknown pageId 1.7"):
            await dispatcher.execute("click", {"pageId": 1.7, "selector": "#x"})
        assert page_of(session).calls == []

    @pytest.mark.asyncio
    async def test_integral_float_page_id_accepted(self, dispatcher):
        result = await dispatcher.execute("goto", {"pageId": 1.0, "url": "https://a.test/"})
        assert result == {"ok": True, "url": "https://a.test/"}


class TestPageActions:

    @pytest.mark.asyncio
    async def test_goto(self, dispatcher, session, broadcaster):
        subscription = broadcaster.subscribe()
        result = await dispatcher.execute("goto", {"pageId": "1", "url": "https://a.test/"})

        assert result == {"ok": True, "url": "https://a.test/"}
        name, args, kwargs = page_of(session).calls[-1]
        assert (name, args) == ("goto", ("https://a.test/",))
        assert kwargs == {"wait_until": "load", "timeout": 1000}

        action_event = drain(subscription)[0]
        assert action_event["type"] == "action:goto"
        assert action_event["pageId"] == "1"
        assert action_event["url"] == "https://a.test/"

    @pytest.mark.asyncio
    async def test_goto_with_options(self, dispatcher, session):
        await dispatcher.execute(
            "goto", {"pageId": "1", "url": "https://a.test/", "waitUntil": "domcontentloaded", "timeoutMs": 250}
        )
        assert page_of(session).calls[-1][2] == {"wait_until": "domcontentloaded", "timeout": 250}

    @pytest.mark.asyncio
    async def test_click_maps_options(self, dispatcher, session):
        result = await dispatcher.execute(
            "click", {"pageId": "1", "selector": "#go", "options": {"clickCount": 2, "timeout": 5}, "timeoutMs": 300}
        )
        assert result == {"ok": True}
        assert page_of(session).calls[-1] == ("click", ("#go",), {"click_count": 2, "timeout": 300})

    @pytest.mark.asyncio
    async def test_wait_for_selector(self, dispatcher, session):
        await dispatcher.execute("waitForSelector", {"pageId": "1", "selector": ".ready"})
        assert page_of(session).calls[-1] == ("wait_for_selector", (".ready",), {"state": "visible", "timeout": 1000})

    @pytest.mark.asyncio
    async def test_type_with_and_without_delay(self, dispatcher, session):
        await dispatcher.execute("type", {"pageId": "1", "selector": "input", "text": "hi"})
        await dispatcher.execute("type", {"pageId": "1", "selector": "input", "text": "yo", "delay": 20})

        calls = [call for call in page_of(session).calls if call[0] == "type"]
        assert calls[0] == ("type", ("input", "hi"), {})
        assert calls[1] == ("type", ("input", "yo"), {"delay": 20})

    @pytest.mark.asyncio
    async def test_fill(self, dispatcher, session):
        await dispatcher.execute("fill", {"pageId": "1", "selector": "input", "value": "abc"})
        assert page_of(session).calls[-1] == ("fill", ("input", "abc"), {"timeout": 1000})

    @pytest.mark.asyncio
    async def test_evaluate(self, dispatcher, session):
        page_of(session).evaluate_result = 42
        result = await dispatcher.execute("evaluate", {"pageId": "1", "expression": "return arg * 2", "arg": 21})

        assert result == {"ok": True, "result": 42}
        assert page_of(session).calls[-1][1] == ("async (arg) => { return arg * 2 }", 21)

    @pytest.mark.asyncio
    async def test_screenshot(self, dispatcher, session):
        result = await dispatcher.execute("screenshot", {"pageId": "1", "fullPage": True})

        assert result == {"ok": True, "base64": "UE5H"}
        assert page_of(session).calls[-1][2] == {"full_page": True}

    @pytest.mark.asyncio
    async def test_close_page(self, dispatcher, session):
        result = await dispatcher.execute("closePage", {"pageId": "1"})

        assert result == {"ok": True}
        assert not session.registry.has("1")
        with pytest.raises(UnknownPageError):
            await dispatcher.execute("goto", {"pageId": "1", "url": "https://a.test/"})

    @pytest.mark.asyncio
    async def test_driver_error_propagates_verbatim(self, dispatcher, session):
        page_of(session).failures["click"] = RuntimeError("Timeout 1000ms exceeded waiting for #missing")

        with pytest.raises(RuntimeError, match="waiting for #missing"):
            await dispatcher.execute("click", {"pageId": "1", "selector": "#missing"})


class TestSessionActions:

    @pytest.mark.asyncio
    async def test_new_page(self, dispatcher):
        assert await dispatcher.execute("newPage", {}) == {"pageId": "2"}

    @pytest.mark.asyncio
    async def test_evaluate_on_service_worker(self, dispatcher, fake_context):
        worker = FakeWorker("chrome-extension://abc/background.js", result={"running": True})
        fake_context.service_workers.append(worker)

        result = await dispatcher.execute("evaluateOnServiceWorker", {"expression": "return state", "arg": 1})

        assert result == {"ok": True, "result": {"running": True}, "workerUrl": "chrome-extension://abc/background.js"}
        assert worker.calls == [("async (arg) => { return state }", 1)]


class TestConcurrency:

    @pytest.mark.asyncio
    async def test_same_page_actions_never_interleave(self, dispatcher, session):
        page = page_of(session)
        page.delays["goto"] = 0.03

        await asyncio.gather(
            dispatcher.execute("goto", {"pageId": "1", "url": "https://a.test/"}),
            dispatcher.execute("click", {"pageId": "1", "selector": "#a"}),
            dispatcher.execute("fill", {"pageId": "1", "selector": "#b", "value": "x"}),
        )

        assert page.log == [
            ("start", "goto", "https://a.test/"),
            ("end", "goto", "https://a.test/"),
            ("start", "click", "#a"),
            ("end", "click", "#a"),
            ("start", "fill", "#b"),
            ("end", "fill", "#b"),
        ]

    @pytest.mark.asyncio
    async def test_slow_page_does_not_block_other_page(self, dispatcher, session):
        await dispatcher.execute("newPage", {})
        page_of(session, "1").delays["goto"] = 0.5

        slow = asyncio.ensure_future(dispatcher.execute("goto", {"pageId": "1", "url": "https://slow.test/"}))
        fast = asyncio.ensure_future(dispatcher.execute("screenshot", {"pageId": "2"}))

        done, _ = await asyncio.wait({slow, fast}, return_when=asyncio.FIRST_COMPLETED)
        assert done == {fast}
        await slow

    @pytest.mark.asyncio
    async def test_concurrent_new_pages_are_distinct_and_correlated(self, dispatcher, session):
        """Each returned id is the tab opened for that request: goto on it lands on its own tab."""
        results = await asyncio.gather(*(dispatcher.execute("newPage", {}) for _ in range(5)))
        page_ids = [result["pageId"] for result in results]
        assert len(set(page_ids)) == 5
        assert "1" not in page_ids

        urls = {page_id: f"https://site.test/{page_id}" for page_id in page_ids}
        await asyncio.gather(
            *(dispatcher.execute("goto", {"pageId": page_id, "url": url}) for page_id, url in urls.items())
        )

        for page_id, url in urls.items():
            page = page_of(session, page_id)
            assert page.url == url
            assert [call[0] for call in page.calls] == ["goto"]

    @pytest.mark.asyncio
    async def test_action_queued_behind_close_fails(self, dispatcher, session):
        page = page_of(session)
        page.delays["goto"] = 0.03

        navigation = asyncio.ensure_future(dispatcher.execute("goto", {"pageId": "1", "url": "https://a.test/"}))
        queued_click = asyncio.ensure_future(dispatcher.execute("click", {"pageId": "1", "selector": "#late"}))
        await asyncio.sleep(0.01)
        page.mark_closed()

        await navigation
        with pytest.raises(PageClosedError, match="closed before action could run"):
            await queued_click
        assert "click" not in [call[0] for call in page.calls]

    @pytest.mark.asyncio
    async def test_failed_action_does_not_block_page(self, dispatcher, session):
        page = page_of(session)
        page.failures["click"] = RuntimeError("element detached")

        results = await asyncio.gather(
            dispatcher.execute("click", {"pageId": "1", "selector": "#x"}),
            dispatcher.execute("goto", {"pageId": "1", "url": "https://a.test/"}),
            return_exceptions=True,
        )

        assert isinstance(results[0], RuntimeError)
        assert results[1] == {"ok": True, "url": "https://a.test/"}
