from conftest import make_cart_item, make_product
from storefront import assistant


class FakeReply:
    def __init__(self, content):
        self.content = content


class FakeLLM:
    def __init__(self, content="LLM says hi", error=None):
        self.content = content
        self.error = error
        self.calls = []

    async def ainvoke(self, messages):
        self.calls.append(messages)
        if self.error:
            raise self.error
        return FakeReply(self.content)


def test_chat_fallback_reply_with_products(client):
    make_product(name="Budget Laptop", price=450, description="A light laptop")
    make_product(name="Pro Laptop", price=1500)

    response = client.post("/api/chat", json={"message": "Find me a laptop under $500"})

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["sessionId"]
    assert [p["name"] for p in data["products"]] == ["Budget Laptop"]
    assert "Budget Laptop" in data["reply"]


def test_chat_requires_message(client):
    response = client.post("/api/chat", json={"message": "   "})

    assert response.status_code == 400
    assert response.json()["error"] == "Message is required"


def test_chat_history_is_kept_per_session(client):
    first = client.post("/api/chat", json={"message": "hello"}).json()["data"]
    client.post("/api/chat", json={"message": "anything for gaming?", "sessionId": first["sessionId"]})

    history = client.get(f"/api/chat/{first['sessionId']}").json()["data"]

    assert history["sessionId"] == first["sessionId"]
    assert [m["role"] for m in history["messages"]] == ["user", "assistant", "user", "assistant"]
    assert history["messages"][0]["content"] == "hello"


def test_chat_unknown_session_history(client):
    assert client.get("/api/chat/does-not-exist").status_code == 404


def test_chat_uses_llm_with_user_context(client, user_id, user_headers, monkeypatch):
    llm = FakeLLM()
    monkeypatch.setattr(assistant, "get_llm", lambda: llm)
    make_cart_item(user_id, make_product(name="Headphones", price=80))

    first = client.post("/api/chat", json={"message": "hi there"}, headers=user_headers).json()["data"]
    second = client.post("/api/chat", json={"message": "what is in my cart?", "sessionId": first["sessionId"]},
                         headers=user_headers).json()["data"]

    assert second["reply"] == "LLM says hi"
    messages = llm.calls[-1]
    context = messages[1].content
    assert "Test User" in context
    assert "Headphones x1" in context
    # previous turn is replayed before the new message
    assert [m.content for m in messages[-3:]] == ["hi there", "LLM says hi", "what is in my cart?"]


def test_chat_falls_back_when_llm_fails(client, monkeypatch):
    monkeypatch.setattr(assistant, "get_llm", lambda: FakeLLM(error=RuntimeError("boom")))

    data = client.post("/api/chat", json={"message": "hello"}).json()["data"]

    assert data["reply"].startswith("Hi!")


def test_budget_and_keyword_extraction():
    assert assistant.extract_budget("phones under $1,200 please") == 1200.0
    assert assistant.extract_budget("below 300") == 300.0
    assert assistant.extract_budget("show me phones") is None
    assert assistant.extract_keywords("Show me the best gaming laptop") == ["gaming", "laptop"]
