"""Tests for the chat endpoints."""

from __future__ import annotations

from aichat.chat.relay import END_OF_TURN
from aichat.routes.chat import COOKIE_NAME, STREAM_ID_LENGTH, _parse_bool, _parse_uint
from tests.conftest import make_completion, make_status_error, make_stream_chunks

STREAM_ID = "a" * STREAM_ID_LENGTH


async def published(sub) -> list[str]:
    return [(await sub.get()).data for _ in range(sub.pending())]


class TestChatPage:
    async def test_issues_stream_id_cookie(self, client):
        response = await client.get("/chat")

        assert response.status_code == 200
        data = response.json()
        assert len(data["stream_id"]) == STREAM_ID_LENGTH
        assert response.cookies[COOKIE_NAME] == data["stream_id"]
        assert "Max-Age=34560000" in response.headers["set-cookie"]

    async def test_reuses_valid_cookie(self, client):
        client.cookies.set(COOKIE_NAME, STREAM_ID)
        response = await client.get("/chat")

        assert response.json()["stream_id"] == STREAM_ID
        assert "set-cookie" not in response.headers

    async def test_replaces_malformed_cookie(self, client):
        client.cookies.set(COOKIE_NAME, "short")
        response = await client.get("/chat")

        assert response.json()["stream_id"] != "short"
        assert COOKIE_NAME in response.cookies

    async def test_page_defaults_from_settings(self, client):
        data = (await client.get("/chat")).json()

        assert data["model"] == "gpt-test"
        assert data["stream"] == "true"
        assert data["max_tokens"] == "0"
        assert data["history"] == "0"


class TestSseMessage:
    async def test_publishes_echo_reply_and_end_of_turn(self, client, app, hub):
        sub = hub.subscribe(STREAM_ID)

        response = await client.post(
            "/chat/sse/msg", data={"stream_id": STREAM_ID, "prompt": "Hi <b>there</b>"}
        )
        assert response.status_code == 202
        assert response.json()["stream_id"] == STREAM_ID

        await app.state.exchanges.wait()
        events = await published(sub)
        assert events[0] == '<p class="has-text-info">Hi &lt;b&gt;there&lt;/b&gt;</p>'
        assert events[1:-1] == ["Hello", " from", " the model!"]
        assert events[-1] == END_OF_TURN

    async def test_prompt_newlines_become_breaks(self, client, app, hub):
        sub = hub.subscribe(STREAM_ID)

        await client.post("/chat/sse/msg", data={"stream_id": STREAM_ID, "prompt": "a\r\nb"})
        await app.state.exchanges.wait()

        assert (await published(sub))[0] == '<p class="has-text-info">a<br>b</p>'

    async def test_missing_prompt_returns_page(self, client, mock_openai):
        response = await client.post("/chat/sse/msg", data={"stream_id": STREAM_ID})

        assert response.status_code == 200
        mock_openai["create"].assert_not_called()

    async def test_history_recorded_after_success(self, client, app):
        await client.post(
            "/chat/sse/msg",
            data={"stream_id": STREAM_ID, "prompt": "Hi", "history": "2"},
        )
        await app.state.exchanges.wait()

        turns = app.state.conversations.turns(STREAM_ID)
        assert [(t.role, t.content) for t in turns] == [
            ("user", "Hi"),
            ("assistant", "Hello from the model!"),
        ]

    async def test_history_sent_on_next_exchange(self, client, app, mock_openai):
        form = {"stream_id": STREAM_ID, "prompt": "Hi", "history": "1", "system": "Be brief"}
        await client.post("/chat/sse/msg", data=form)
        await app.state.exchanges.wait()
        await client.post("/chat/sse/msg", data={**form, "prompt": "Again"})
        await app.state.exchanges.wait()

        messages = mock_openai["create"].call_args.kwargs["messages"]
        assert [m["content"] for m in messages] == [
            "Be brief", "Hi", "Hello from the model!", "Again",
        ]

    async def test_error_not_recorded_in_history(self, client, app, hub, mock_openai):
        mock_openai["set_error"](make_status_error(429))
        sub = hub.subscribe(STREAM_ID)

        await client.post(
            "/chat/sse/msg",
            data={"stream_id": STREAM_ID, "prompt": "Hi", "history": "2"},
        )
        await app.state.exchanges.wait()

        assert (await published(sub))[1:] == ["[[too many requests]]", END_OF_TURN]
        assert app.state.conversations.turns(STREAM_ID) == []

    async def test_form_overrides(self, client, app, mock_openai):
        mock_openai["set_completion"](make_completion("whole"))
        await client.post(
            "/chat/sse/msg",
            data={
                "stream_id": STREAM_ID,
                "prompt": "Hi",
                "stream": "false",
                "model": "gpt-other",
                "max_tokens": "32",
            },
        )
        await app.state.exchanges.wait()

        kwargs = mock_openai["create"].call_args.kwargs
        assert kwargs["model"] == "gpt-other"
        assert kwargs["max_tokens"] == 32
        assert "stream" not in kwargs

    async def test_unconfigured_client_is_503(self, client, app):
        app.state.completion_client = None
        response = await client.post(
            "/chat/sse/msg", data={"stream_id": STREAM_ID, "prompt": "Hi"}
        )
        assert response.status_code == 503


class TestDirectMessage:
    async def test_streams_data_records(self, client, mock_openai):
        mock_openai["set_stream"](make_stream_chunks("one", "two\nlines"))

        response = await client.post("/chat/msg", data={"prompt": "Hi"})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert response.headers["cache-control"] == "no-cache"
        assert response.text == "data: one\n\ndata: two\ndata: lines\n\n"

    async def test_error_streamed_as_sentinel(self, client, mock_openai):
        mock_openai["set_error"](make_status_error(500))

        response = await client.post("/chat/msg", data={"prompt": "Hi"})

        assert response.text == "data: [[service unavailable]]\n\n"

    async def test_empty_prompt_rejected(self, client):
        response = await client.post("/chat/msg", data={"prompt": ""})
        assert response.status_code == 422

    async def test_history_kept_per_stream_id(self, client, app):
        await client.post(
            "/chat/msg", data={"prompt": "Hi", "stream_id": STREAM_ID, "history": "3"}
        )

        turns = app.state.conversations.turns(STREAM_ID)
        assert [t.content for t in turns] == ["Hi", "Hello from the model!"]


class TestFormParsing:
    def test_parse_bool(self):
        assert _parse_bool("TRUE", False) is True
        assert _parse_bool("0", True) is False
        assert _parse_bool("maybe", True) is True
        assert _parse_bool(None, False) is False

    def test_parse_uint(self):
        assert _parse_uint("5", 0) == 5
        assert _parse_uint("-1", 3) == 3
        assert _parse_uint("x", 2) == 2
        assert _parse_uint(None, 1) == 1
