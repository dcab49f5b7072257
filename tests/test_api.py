"""
Route-level tests through FastAPI's TestClient with fake external clients.
"""

from datetime import timedelta

import pytest

from finora.core.exceptions import ProviderRateLimitError
from finora.core.security import create_access_token
from finora.services.llm.config import TaskType

from tests.conftest import TEST_SECRET


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["ok"] is True
        assert body["status"] == "healthy"
        assert body["checks"] == {"store": True, "document_worker": True}
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert "X-Request-ID" in response.headers

    def test_request_id_echoed(self, client):
        response = client.get("/health", headers={"X-Request-ID": "req-123"})
        assert response.headers["X-Request-ID"] == "req-123"


class TestCompanyRoutes:
    def test_get_company_cached_once_analyzed(self, client, provider):
        first = client.get("/company/aapl")
        client.post("/analyze/AAPL")
        second = client.get("/company/AAPL")

        assert first.status_code == 200
        assert first.json()["data"]["cached"] is False
        assert first.json()["data"]["metrics"]["pe_ratio"] == 30.5
        assert "raw" not in first.json()["data"]
        assert second.json()["data"]["cached"] is True
        assert second.json()["message"] == "Data retrieved from cache"
        assert second.json()["data"]["analysis"]["risk"] == "Low"
        assert provider.fetch_calls == ["AAPL"]

    def test_get_company_without_analysis_refetches(self, client, provider):
        client.get("/company/AAPL")
        second = client.get("/company/AAPL")

        assert second.json()["data"]["cached"] is False
        assert provider.fetch_calls == ["AAPL", "AAPL"]

    def test_unknown_symbol_is_404(self, client):
        response = client.get("/company/NOPE")

        assert response.status_code == 404
        body = response.json()
        assert body["ok"] is False
        assert body["error"] == "SYMBOL_NOT_FOUND"

    def test_rate_limit_is_429(self, client, provider):
        provider.bundles["AAPL"] = ProviderRateLimitError()
        response = client.get("/company/AAPL")

        assert response.status_code == 429
        assert response.json()["error"] == "PROVIDER_RATE_LIMITED"

    def test_refresh_and_list(self, client, provider):
        client.get("/company/AAPL")
        refreshed = client.get("/company/AAPL/refresh")
        listed = client.get("/companies")

        assert refreshed.status_code == 200
        assert provider.fetch_calls == ["AAPL", "AAPL"]
        assert listed.json()["count"] == 1
        assert listed.json()["data"][0]["symbol"] == "AAPL"


class TestAnalysisRoutes:
    def test_analysis_lifecycle(self, client, llm):
        created = client.post("/analyze/aapl")
        assert created.status_code == 200
        assert created.json()["cached"] is False
        assert created.json()["data"]["analysis"]["risk"] == "Low"

        again = client.post("/analyze/AAPL")
        assert again.json()["cached"] is True
        assert len(llm.calls_for(TaskType.ANALYSIS)) == 1

        stored = client.get("/analyze/AAPL")
        assert stored.json()["name"] == "Apple Inc"

        deleted = client.delete("/analyze/AAPL")
        assert deleted.json()["ok"] is True
        assert client.get("/analyze/AAPL").status_code == 404

    def test_get_analysis_without_company(self, client):
        assert client.get("/analyze/MSFT").status_code == 404

    def test_llm_not_configured_is_500(self, client, container):
        from finora.services.llm.client import LLMClient

        container.analysis.llm = LLMClient(api_key="", model="gpt-test")
        response = client.post("/analyze/AAPL")

        assert response.status_code == 500
        assert response.json()["error"] == "CONFIGURATION_ERROR"


class TestChatRoutes:
    def test_anonymous_chat_and_history(self, client):
        reply = client.post("/chat", json={"message": "What is a P/E ratio?"})
        assert reply.status_code == 200
        body = reply.json()
        assert body["ok"] is True
        assert body["chart"]["type"] == "bar"

        history = client.get(f"/chat/history/{body['session_id']}")
        assert history.status_code == 200
        assert [m["role"] for m in history.json()["messages"]] == ["user", "assistant"]

        assert client.delete(f"/chat/history/{body['session_id']}").status_code == 200
        assert client.get(f"/chat/history/{body['session_id']}").status_code == 404

    def test_new_session(self, client):
        response = client.post("/chat/new", json={"symbol": "tsla"})
        assert response.status_code == 200
        assert response.json()["symbol"] == "TSLA"
        assert response.json()["company_name"] is None

    def test_empty_message_is_400(self, client):
        response = client.post("/chat", json={"message": ""})
        assert response.status_code == 400

    def test_authenticated_chat_uses_portfolio(self, client, container, llm, auth_headers):
        import asyncio

        from finora.repositories import PortfolioRepository
        from finora.schemas.portfolio import Portfolio

        portfolio = Portfolio(user_id="user-1", cash_balance=1000.0, risk_tolerance="aggressive")
        asyncio.run(PortfolioRepository(container.store).save(portfolio))

        client.post("/chat", json={"message": "Should I buy more?"}, headers=auth_headers)

        assert "Risk Tolerance: aggressive" in llm.calls_for(TaskType.CHAT)[-1]


class TestDocumentRoutes:
    def test_requires_authentication(self, client):
        assert client.get("/documents").status_code == 401

    def test_invalid_token(self, client):
        response = client.get("/documents", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401
        assert response.json()["error"] == "INVALID_TOKEN"

    def test_expired_token(self, client):
        token = create_access_token("user-1", expires_delta=timedelta(seconds=-10), secret=TEST_SECRET)
        response = client.get("/documents", headers={"Authorization": f"Bearer {token}"})
        assert response.json()["error"] == "TOKEN_EXPIRED"

    def test_upload_list_get_delete(self, client, container, auth_headers):
        upload = client.post(
            "/documents/upload",
            files={"file": ("statement.csv", b"date,amount\n2024-01-02,10\n", "text/csv")},
            data={"category": "BANK_STATEMENT"},
            headers=auth_headers,
        )
        assert upload.status_code == 202
        ack = upload.json()["data"]
        assert ack["processing_status"] == "UPLOADED"
        document_id = ack["document_id"]

        listed = client.get("/documents", headers=auth_headers).json()
        assert listed["count"] == 1
        assert listed["data"][0]["document_id"] == document_id

        fetched = client.get(f"/documents/{document_id}", headers=auth_headers)
        assert fetched.status_code == 200
        assert fetched.json()["data"]["category"] == "BANK_STATEMENT"

        other = create_access_token("user-2", secret=TEST_SECRET)
        assert client.get(f"/documents/{document_id}", headers={"Authorization": f"Bearer {other}"}).status_code == 404

        assert client.delete(f"/documents/{document_id}", headers=auth_headers).status_code == 200
        assert client.get(f"/documents/{document_id}", headers=auth_headers).status_code == 404

    def test_rejects_unsupported_type(self, client, auth_headers):
        response = client.post(
            "/documents/upload",
            files={"file": ("archive.zip", b"PK", "application/zip")},
            headers=auth_headers,
        )
        assert response.status_code == 400
        assert response.json()["error"] == "INVALID_FILE_TYPE"


class TestMarketRoutes:
    def test_movers(self, client, provider):
        first = client.get("/market/movers").json()
        second = client.get("/market/movers").json()

        assert first["cached"] is False
        assert second["cached"] is True
        assert len(first["data"]["top_gainers"]) == 10
        assert provider.mover_calls == 1

    @pytest.mark.parametrize("path", ["/market/screener", "/market/stocks"])
    def test_screener_filter(self, client, path):
        client.get("/company/AAPL")

        large = client.get(path, params={"filter": "large"}).json()
        small = client.get(path, params={"filter": "small"}).json()

        assert large["count"] == 1
        assert large["filter"] == "large"
        assert small["count"] == 0

    def test_invalid_filter_is_validation_envelope(self, client):
        response = client.get("/market/screener", params={"filter": "mega"})

        assert response.status_code == 422
        body = response.json()
        assert body["ok"] is False
        assert body["error"] == "VALIDATION_ERROR"
        assert body["details"]["errors"][0]["loc"] == ["query", "filter"]

    def test_search(self, client):
        client.get("/company/AAPL")

        found = client.get("/market/search", params={"query": "apple", "sector": "technology", "min_market_cap": 1e12})
        missed = client.get("/market/search", params={"query": "apple", "max_market_cap": 1e9})

        assert found.status_code == 200
        assert found.json()["count"] == 1
        assert found.json()["data"][0]["symbol"] == "AAPL"
        assert missed.json()["count"] == 0

    def test_sma_series(self, client, provider):
        response = client.get("/market/indicators/aapl/sma", params={"time_period": 50})

        assert response.status_code == 200
        body = response.json()
        assert body["ok"] is True
        assert body["symbol"] == "AAPL"
        assert body["indicator"] == "SMA"
        assert body["time_period"] == 50
        assert len(body["data"]) == 90
        assert body["data"][0]["date"] < body["data"][-1]["date"]
        assert provider.indicator_calls == [("SMA", "AAPL", 50)]

    def test_rsi_series(self, client):
        body = client.get("/market/indicators/AAPL/rsi").json()

        assert body["time_period"] == 14
        assert body["current_rsi"] == 129.0
        assert body["signal"] == "OVERBOUGHT"

    def test_indicator_rate_limit_is_429(self, client, provider):
        provider.indicators["RSI"] = ProviderRateLimitError()

        response = client.get("/market/indicators/AAPL/rsi")

        assert response.status_code == 429
        assert response.json()["error"] == "PROVIDER_RATE_LIMITED"

    def test_all_indicators(self, client, provider):
        provider.indicators.pop("SMA")

        body = client.get("/market/indicators/AAPL/all").json()

        assert body["ok"] is True
        assert set(body["indicators"]) == {"rsi"}
        assert body["indicators"]["rsi"]["signal"] == "OVERBOUGHT"
        assert "timestamp" in body
