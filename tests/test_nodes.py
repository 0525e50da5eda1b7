"""
Tests for the built-in node handlers.
"""

import asyncio
import json

import httpx
import pytest
import sqlalchemy as sa
from sqlalchemy.ext.asyncio import create_async_engine

from agentflow.engine.errors import (
    ConfigurationError,
    ExternalCallError,
    NodeExecutionError,
    NotFoundError,
)
from agentflow.engine.executor import ExecutionStatus, FlowExecutor
from agentflow.engine.models import Credential
from agentflow.integrations.database import DatabaseConnector

from conftest import make_edge, make_flow, make_node


def single_node_flow(node_type, **data):
    """trigger -> one node under test."""
    return make_flow(
        nodes=[make_node("t", "trigger_webhook"), make_node("n", node_type, label="Under test", **data)],
        edges=[make_edge("t", "n")],
    )


async def run_node(executor, node_type, input_data=None, **data):
    return await executor.execute(single_node_flow(node_type, **data), input_data or {})


async def node_error(executor, node_type, input_data=None, **data) -> Exception:
    """Run a failing node and return the wrapped cause."""
    with pytest.raises(NodeExecutionError) as exc_info:
        await run_node(executor, node_type, input_data, **data)
    assert exc_info.value.node_id == "n"
    return exc_info.value.cause


# ============================================================
# Action Nodes
# ============================================================

class TestSendMessage:
    """Tests for send_message nodes."""
    
    @pytest.mark.asyncio
    async def test_template_resolved(self, executor):
        output = await run_node(
            executor, "send_message", {"sender": {"name": "Ann"}},
            message="Hi {{sender.name}}!", reply_to_trigger=True,
        )
        assert output == {
            "message": "Hi Ann!",
            "response": "Hi Ann!",
            "reply_to_trigger": True,
        }


class TestSetVariable:
    """Tests for set_variable nodes."""
    
    @pytest.mark.asyncio
    async def test_literal_value(self, executor):
        output = await run_node(executor, "set_variable", name="count", value=3)
        assert output == {"count": 3}
    
    @pytest.mark.asyncio
    async def test_empty_name_returns_scope(self, executor):
        output = await run_node(executor, "set_variable", {"message": "hi"}, name="", value="x")
        assert output == {"message": "hi"}


# ============================================================
# AI Agent
# ============================================================

class TestAIAgent:
    """Tests for ai_agent nodes."""
    
    @pytest.mark.asyncio
    async def test_credential_key(self, executor, credentials, ai_provider):
        credentials.add(Credential(id="ai", type="openai", config={"api_key": "sk-stored"}))
        output = await run_node(
            executor, "ai_agent", {"message": "hello", "shop": "Acme"},
            credential_id="ai", system_prompt="You work for {{shop}}.",
        )
        
        assert output == {"response": "Hi there!", "ai_response": "Hi there!", "message": "Hi there!"}
        assert ai_provider.keys == ["sk-stored"]
        request = ai_provider.requests[0]
        assert request.prompt == "hello"
        assert request.system_prompt == "You work for Acme."
        assert request.model == "gpt-4o-mini"
        assert request.max_tokens == 500
        assert request.temperature == 0.7
    
    @pytest.mark.asyncio
    async def test_inline_key_fallback(self, executor, ai_provider):
        await run_node(
            executor, "ai_agent", {"message": "hello"},
            credential_id="missing", api_key="sk-inline", model="gpt-4o",
        )
        assert ai_provider.keys == ["sk-inline"]
        assert ai_provider.requests[0].model == "gpt-4o"
    
    @pytest.mark.asyncio
    async def test_text_fallback(self, executor, ai_provider):
        await run_node(executor, "ai_agent", {"text": "from text"}, api_key="sk-inline")
        assert ai_provider.requests[0].prompt == "from text"
    
    @pytest.mark.asyncio
    async def test_requires_key(self, executor, ai_provider):
        cause = await node_error(executor, "ai_agent", {"message": "hello"})
        assert isinstance(cause, ConfigurationError)
        assert "requires API key" in str(cause)
        assert ai_provider.requests == []
    
    @pytest.mark.asyncio
    async def test_requires_message(self, executor, ai_provider):
        cause = await node_error(executor, "ai_agent", {}, api_key="sk-inline")
        assert isinstance(cause, ConfigurationError)
        assert "no message" in str(cause)
        assert ai_provider.requests == []
    
    @pytest.mark.asyncio
    async def test_response_replaces_message(self, executor):
        flow = make_flow(
            nodes=[
                make_node("t", "trigger_telegram"),
                make_node("ai", "ai_agent", api_key="sk-inline"),
                make_node("reply", "send_message", message="Bot: {{ai_response}}"),
            ],
            edges=[make_edge("t", "ai"), make_edge("ai", "reply")],
        )
        output = await executor.execute(flow, {"message": "hello"})
        assert output["message"] == "Bot: Hi there!"


# ============================================================
# HTTP Request
# ============================================================

class RecordingTransport:
    """Mock transport handler recording requests."""
    
    def __init__(self, response=None, error=None):
        self.requests = []
        self.response = response or httpx.Response(200, json={"ok": True})
        self.error = error
    
    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error:
            raise self.error
        return self.response


def http_executor(credentials, transport) -> FlowExecutor:
    client = httpx.AsyncClient(transport=httpx.MockTransport(transport))
    return FlowExecutor(credentials, http_client=client)


class TestHTTPRequest:
    """Tests for http_request nodes."""
    
    @pytest.mark.asyncio
    async def test_defaults_to_get(self, credentials):
        transport = RecordingTransport()
        executor = http_executor(credentials, transport)
        output = await run_node(executor, "http_request", url="https://api.example.com/ping")
        
        assert transport.requests[0].method == "GET"
        assert str(transport.requests[0].url) == "https://api.example.com/ping"
        assert output["status_code"] == 200
        assert output["body"] == {"ok": True}
        assert "content-type" in output["headers"]
    
    @pytest.mark.asyncio
    async def test_interpolated_request(self, credentials):
        transport = RecordingTransport()
        executor = http_executor(credentials, transport)
        await run_node(
            executor, "http_request", {"user": "42", "q": "shoes"},
            method="post",
            url="https://api.example.com/users/{{user}}",
            headers={"X-Trace": "{{user}}"},
            query_params={"search": "{{q}}"},
            body={"query": "{{q}}", "page": 1},
        )
        
        request = transport.requests[0]
        assert request.method == "POST"
        assert request.url.path == "/users/42"
        assert request.url.params["search"] == "shoes"
        assert request.headers["X-Trace"] == "42"
        assert request.headers["Content-Type"] == "application/json"
        assert json.loads(request.content) == {"query": "shoes", "page": 1}
    
    @pytest.mark.asyncio
    async def test_text_body(self, credentials):
        transport = RecordingTransport(response=httpx.Response(201, text="created"))
        executor = http_executor(credentials, transport)
        output = await run_node(
            executor, "http_request", {"name": "Ann"},
            method="PUT", url="https://api.example.com/x",
            body="name={{name}}", headers={"Content-Type": "text/plain"},
        )
        
        assert transport.requests[0].content == b"name=Ann"
        assert transport.requests[0].headers["Content-Type"] == "text/plain"
        assert output["status_code"] == 201
        assert output["body"] == "created"
    
    @pytest.mark.asyncio
    async def test_custom_api_credential(self, credentials):
        credentials.add(Credential(id="api", type="custom_api", config={
            "base_url": "https://api.example.com/v1/",
            "headers": {"X-Client": "agentflow"},
            "auth_type": "bearer",
            "auth_value": "tok",
        }))
        transport = RecordingTransport()
        executor = http_executor(credentials, transport)
        await run_node(executor, "http_request", url="/orders", credential_id="api")
        
        request = transport.requests[0]
        assert str(request.url) == "https://api.example.com/v1/orders"
        assert request.headers["Authorization"] == "Bearer tok"
        assert request.headers["X-Client"] == "agentflow"
    
    @pytest.mark.asyncio
    async def test_missing_url(self, credentials):
        transport = RecordingTransport()
        executor = http_executor(credentials, transport)
        cause = await node_error(executor, "http_request", method="GET")
        
        assert isinstance(cause, ConfigurationError)
        assert "URL is required" in str(cause)
        assert transport.requests == []
    
    @pytest.mark.asyncio
    async def test_network_error(self, credentials):
        transport = RecordingTransport(error=httpx.ConnectError("refused"))
        executor = http_executor(credentials, transport)
        cause = await node_error(executor, "http_request", url="https://api.example.com")
        assert isinstance(cause, ExternalCallError)
    
    @pytest.mark.asyncio
    async def test_error_status_is_output(self, credentials):
        transport = RecordingTransport(response=httpx.Response(500, json={"error": "down"}))
        executor = http_executor(credentials, transport)
        output = await run_node(executor, "http_request", url="https://api.example.com")
        assert output["status_code"] == 500
        assert output["body"] == {"error": "down"}


# ============================================================
# Database
# ============================================================

async def create_users_table(path) -> None:
    engine = create_async_engine(f"sqlite+aiosqlite:///{path}")
    async with engine.begin() as conn:
        await conn.execute(sa.text(
            "CREATE TABLE users (id INTEGER PRIMARY KEY, name TEXT, age INTEGER)"
        ))
        await conn.execute(sa.text(
            "INSERT INTO users (name, age) VALUES ('ann', 30), ('bob', 17), ('cid', 45)"
        ))
    await engine.dispose()


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "flows.db"


@pytest.fixture
def database_executor(db_path, credentials):
    credentials.add(Credential(id="db", type="database", config={
        "driver": "sqlite+aiosqlite",
        "database": str(db_path),
    }))
    return FlowExecutor(credentials, database=DatabaseConnector())


class TestDatabase:
    """Tests for database nodes against SQLite."""
    
    @pytest.mark.asyncio
    async def test_select_with_where(self, database_executor, db_path):
        await create_users_table(db_path)
        output = await run_node(
            database_executor, "database", {"min_age": 18},
            credential_id="db", operation="select", table="users",
            columns=["name"],
            where=[{"column": "age", "operator": "gte", "value": "{{min_age}}"}],
        )
        assert output["count"] == 2
        assert sorted(r["name"] for r in output["rows"]) == ["ann", "cid"]
    
    @pytest.mark.asyncio
    async def test_select_limit(self, database_executor, db_path):
        await create_users_table(db_path)
        output = await run_node(
            database_executor, "database",
            credential_id="db", operation="select", table="users", limit=1,
        )
        assert output["count"] == 1
        assert set(output["rows"][0]) == {"id", "name", "age"}
    
    @pytest.mark.asyncio
    async def test_insert_then_select(self, database_executor, db_path):
        await create_users_table(db_path)
        flow = make_flow(
            nodes=[
                make_node("t", "trigger_webhook"),
                make_node("ins", "database", credential_id="db", operation="insert",
                          table="users", values={"name": "{{name}}", "age": 21}),
                make_node("sel", "database", credential_id="db", operation="select",
                          table="users", where={"name": "{{name}}"}),
            ],
            edges=[make_edge("t", "ins"), make_edge("ins", "sel")],
        )
        result = await database_executor.run(flow, {"name": "dee"})
        
        assert result.error is None
        assert result.variables["inserted"]
        assert result.output["count"] == 1
        assert result.output["rows"][0]["age"] == 21
    
    @pytest.mark.asyncio
    async def test_update_and_delete(self, database_executor, db_path):
        await create_users_table(db_path)
        updated = await run_node(
            database_executor, "database",
            credential_id="db", operation="update", table="users",
            values={"age": 18}, where={"name": "bob"},
        )
        assert updated == {"rows_affected": 1}
        
        deleted = await run_node(
            database_executor, "database",
            credential_id="db", operation="delete", table="users",
            where=[{"column": "age", "operator": "lt", "value": 40}],
        )
        assert deleted == {"rows_affected": 2}
    
    @pytest.mark.asyncio
    async def test_raw_query_binds_variables(self, database_executor, db_path):
        await create_users_table(db_path)
        output = await run_node(
            database_executor, "database", {"name": "ann' OR '1'='1"},
            credential_id="db", operation="raw",
            query="SELECT name FROM users WHERE name = {{name}}",
        )
        assert output == {"rows": [], "count": 0}
    
    @pytest.mark.asyncio
    async def test_raw_statement_rows_affected(self, database_executor, db_path):
        await create_users_table(db_path)
        output = await run_node(
            database_executor, "database", {"age": 99},
            credential_id="db", operation="raw",
            query="UPDATE users SET age = {{age}}",
        )
        assert output == {"rows_affected": 3}
    
    @pytest.mark.asyncio
    async def test_raw_unresolved_variable(self, database_executor, db_path):
        await create_users_table(db_path)
        cause = await node_error(
            database_executor, "database",
            credential_id="db", operation="raw", query="SELECT * FROM users WHERE id = {{id}}",
        )
        assert isinstance(cause, ConfigurationError)
    
    @pytest.mark.asyncio
    async def test_unknown_table(self, database_executor, db_path):
        await create_users_table(db_path)
        cause = await node_error(
            database_executor, "database",
            credential_id="db", operation="select", table="orders",
        )
        assert isinstance(cause, NotFoundError)
    
    @pytest.mark.asyncio
    async def test_unknown_column(self, database_executor, db_path):
        await create_users_table(db_path)
        cause = await node_error(
            database_executor, "database",
            credential_id="db", operation="select", table="users", where={"email": "x"},
        )
        assert isinstance(cause, ConfigurationError)
        assert "email" in str(cause)
    
    @pytest.mark.asyncio
    async def test_sql_text_where_rejected(self, database_executor, db_path):
        cause = await node_error(
            database_executor, "database",
            credential_id="db", operation="delete", table="users", where="1=1",
        )
        assert isinstance(cause, ConfigurationError)
    
    @pytest.mark.asyncio
    async def test_wrong_credential_type(self, database_executor, credentials):
        credentials.add(Credential(id="ai", type="openai", config={"api_key": "sk"}))
        cause = await node_error(
            database_executor, "database",
            credential_id="ai", operation="select", table="users",
        )
        assert isinstance(cause, ConfigurationError)
        assert "expected 'database'" in str(cause)
    
    @pytest.mark.asyncio
    async def test_missing_credential(self, database_executor, db_path):
        cause = await node_error(
            database_executor, "database",
            credential_id="nope", operation="select", table="users",
        )
        assert isinstance(cause, NotFoundError)


class TestDatabaseDrivers:
    """Tests for raw query quoting and driver problems."""
    
    @pytest.mark.asyncio
    async def test_raw_query_quoted_variable(self, database_executor, db_path):
        await create_users_table(db_path)
        output = await run_node(
            database_executor, "database", {"name": "ann"},
            credential_id="db", operation="raw",
            query="SELECT name FROM users WHERE name = '{{name}}'",
        )
        assert output == {"rows": [{"name": "ann"}], "count": 1}
    
    @pytest.mark.asyncio
    async def test_unknown_driver(self, credentials):
        credentials.add(Credential(id="bad", type="database", config={
            "driver": "mysql+nosuchdriver", "database": "app",
        }))
        executor = FlowExecutor(credentials, database=DatabaseConnector())
        cause = await node_error(
            executor, "database",
            credential_id="bad", operation="select", table="users",
        )
        assert isinstance(cause, ConfigurationError)
        assert "unsupported database driver" in str(cause)


# ============================================================
# Cancellation of external calls
# ============================================================

class HangingCall:
    """Waits forever once called, recording when it starts and is cancelled."""
    
    def __init__(self):
        self.started = asyncio.Event()
        self.cancelled = False
    
    async def wait_forever(self):
        self.started.set()
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            self.cancelled = True
            raise


class HangingTransport(HangingCall):
    async def __call__(self, request: httpx.Request) -> httpx.Response:
        await self.wait_forever()


class HangingAIProvider(HangingCall):
    async def complete(self, request, credential) -> str:
        await self.wait_forever()


async def run_and_cancel(executor, flow, call: HangingCall, input_data=None):
    """Run a flow and cancel it once the hanging call has started."""
    cancel = asyncio.Event()
    
    async def cancel_when_started():
        await call.started.wait()
        cancel.set()
    
    canceller = asyncio.create_task(cancel_when_started())
    result = await asyncio.wait_for(
        executor.run(flow, input_data or {}, cancel_event=cancel), timeout=5
    )
    await canceller
    return result


class TestCancelExternalCalls:
    """Tests for cancelling a run while a node waits on a service."""
    
    @pytest.mark.asyncio
    async def test_cancel_http_request(self, credentials):
        transport = HangingTransport()
        executor = http_executor(credentials, transport)
        flow = single_node_flow("http_request", url="https://api.example.com/slow")
        
        result = await run_and_cancel(executor, flow, transport)
        
        assert result.status == ExecutionStatus.CANCELLED
        assert result.failed_node == "n"
        assert transport.cancelled is True
    
    @pytest.mark.asyncio
    async def test_cancel_ai_completion(self, credentials):
        provider = HangingAIProvider()
        executor = FlowExecutor(credentials, ai_provider=provider)
        flow = single_node_flow("ai_agent", api_key="sk-inline")
        
        result = await run_and_cancel(executor, flow, provider, {"message": "hello"})
        
        assert result.status == ExecutionStatus.CANCELLED
        assert result.failed_node == "n"
        assert provider.cancelled is True
