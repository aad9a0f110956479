"""Unit tests for the proxy exception hierarchy."""

from __future__ import annotations

from vis42_proxy.transport.exceptions import (
    ConnectTimeoutError,
    HandlerError,
    ProxyError,
    RemoteConnectionError,
    SupervisorClosedError,
    TransportError,
    describe_error,
)


class TestExceptionHierarchy:
    """Tests for exception inheritance."""

    def test_all_exceptions_inherit_from_proxy_error(self):
        """Test that every proxy exception inherits from ProxyError."""
        assert issubclass(ConnectTimeoutError, ProxyError)
        assert issubclass(TransportError, ProxyError)
        assert issubclass(RemoteConnectionError, ProxyError)
        assert issubclass(HandlerError, ProxyError)
        assert issubclass(SupervisorClosedError, ProxyError)

    def test_timeout_is_builtin_timeout(self):
        """Test that ConnectTimeoutError is caught by ``except TimeoutError``."""
        assert issubclass(ConnectTimeoutError, TimeoutError)

    def test_remote_connection_error_does_not_shadow_builtin(self):
        """Test that RemoteConnectionError is distinct from the builtin ConnectionError."""
        assert not issubclass(RemoteConnectionError, ConnectionError)

    def test_timeout_is_not_a_transport_error(self):
        """Test that a timeout can never be mistaken for a fallback-eligible failure."""
        assert not issubclass(ConnectTimeoutError, TransportError)


class TestConnectTimeoutError:
    """Tests for ConnectTimeoutError."""

    def test_message_names_deadline(self):
        """Test the timeout message format."""
        error = ConnectTimeoutError(30000)
        assert str(error) == "Connection timed out after 30000ms"
        assert error.timeout_ms == 30000
        assert error.transports_tried == ()

    def test_transports_tried(self):
        """Test that tried transports are stored as a tuple."""
        error = ConnectTimeoutError(100, ["StreamableHTTP"])
        assert error.transports_tried == ("StreamableHTTP",)


class TestTransportError:
    """Tests for TransportError."""

    def test_transport_error_fields(self):
        """Test TransportError creation."""
        error = TransportError("SSE", "connection refused")
        assert error.transport == "SSE"
        assert error.reason == "connection refused"
        assert str(error) == "SSE connect failed: connection refused"


class TestRemoteConnectionError:
    """Tests for RemoteConnectionError."""

    def test_summarizes_all_transports(self):
        """Test that the message lists every transport and the last reason."""
        error = RemoteConnectionError(
            [TransportError("StreamableHTTP", "404"), TransportError("SSE", "refused")],
        )
        assert error.transports_tried == ("StreamableHTTP", "SSE")
        assert str(error) == "Unable to connect to remote server (StreamableHTTP, SSE): refused"

    def test_empty_errors(self):
        """Test RemoteConnectionError with no transport errors."""
        error = RemoteConnectionError([])
        assert error.transports_tried == ()
        assert "no transport attempted" in str(error)


class TestHandlerError:
    """Tests for HandlerError."""

    def test_handler_error_fields(self):
        """Test HandlerError creation."""
        error = HandlerError("read_resource", "boom")
        assert error.operation == "read_resource"
        assert error.reason == "boom"
        assert str(error) == "read_resource failed: boom"


class TestDescribeError:
    """Tests for describe_error."""

    def test_uses_message(self):
        """Test that the error message is used when present."""
        assert describe_error(ValueError("bad value")) == "bad value"

    def test_falls_back_to_class_name(self):
        """Test that an empty message falls back to the class name."""
        assert describe_error(ConnectionResetError()) == "ConnectionResetError"

    def test_unwraps_single_member_groups(self):
        """Test that nested single-member exception groups are unwrapped."""
        inner = OSError("network unreachable")
        group = ExceptionGroup("outer", [ExceptionGroup("inner", [inner])])
        assert describe_error(group) == "network unreachable"

    def test_keeps_multi_member_groups(self):
        """Test that a group with several members is described as a whole."""
        group = ExceptionGroup("several failures", [OSError("a"), OSError("b")])
        assert describe_error(group).startswith("several failures")
