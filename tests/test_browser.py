from __future__ import annotations

import asyncio

from gamescout.browser import RenderContext


class FakeResponse:
    def __init__(self, url: str, body, content_type: str = "application/json; charset=utf-8"):
        self.url = url
        self.headers = {"content-type": content_type}
        self._body = body

    async def json(self):
        if isinstance(self._body, Exception):
            raise self._body
        return self._body

    async def text(self):
        return "not json"


class FakePage:
    def __init__(self) -> None:
        self.handlers = {}
        self.url = "https://rotrends.com/games?keyword=a"
        self.links = []

    def on(self, event, handler) -> None:
        self.handlers[event] = handler

    async def eval_on_selector_all(self, selector, script):
        return self.links


class FakeContext:
    def __init__(self) -> None:
        self.closed = 0

    async def close(self) -> None:
        self.closed += 1


def _is_games(url: str) -> bool:
    return "games" in url


def test_observe_json_returns_first_matching_payload() -> None:
    async def scenario():
        page = FakePage()
        render = RenderContext(FakeContext(), page)
        emit = page.handlers["response"]
        emit(FakeResponse("https://rotrends.com/api/stats", {"skip": True}))
        emit(FakeResponse("https://rotrends.com/api/games", ValueError("bad body")))
        emit(FakeResponse("https://rotrends.com/style.css", {}, content_type="text/css"))
        emit(FakeResponse("https://rotrends.com/api/games?page=1", {"data": {"games": []}}))
        return await render.observe_json_response(_is_games, 1.0)

    assert asyncio.run(scenario()) == {"data": {"games": []}}


def test_observe_json_waits_for_late_response() -> None:
    async def scenario():
        page = FakePage()
        render = RenderContext(FakeContext(), page)
        loop = asyncio.get_running_loop()
        loop.call_later(
            0.01,
            page.handlers["response"],
            FakeResponse("https://rotrends.com/api/games", {"late": True}),
        )
        return await render.observe_json_response(_is_games, 2.0)

    assert asyncio.run(scenario()) == {"late": True}


def test_observe_json_times_out_with_none() -> None:
    async def scenario():
        render = RenderContext(FakeContext(), FakePage())
        return await render.observe_json_response(_is_games, 0.05)

    assert asyncio.run(scenario()) is None


def test_extract_by_css_resolves_links() -> None:
    async def scenario():
        page = FakePage()
        page.links = [
            {"href": "/games/5-five", "title": " Five "},
            {"href": "", "title": "No link"},
        ]
        render = RenderContext(FakeContext(), page)
        return await render.extract_by_css("a")

    assert asyncio.run(scenario()) == [
        {"identity": "5", "title": "Five", "href": "https://rotrends.com/games/5-five"}
    ]


def test_release_is_idempotent() -> None:
    context = FakeContext()
    render = RenderContext(context, FakePage())

    asyncio.run(render.release())
    asyncio.run(render.release())

    assert context.closed == 1
