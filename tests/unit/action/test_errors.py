"""Unit tests for the action error taxonomy."""

from pathlib import Path

from nixctl.action.errors import (
    ActionError,
    AlreadyExists,
    ChildFailed,
    CommandFailure,
    Custom,
    IoFailure,
    MalformedState,
    MultipleChildren,
    UnknownUrlScheme,
    collect_errors,
)


def _error(tag: str, detail: str = "broken") -> ActionError:
    return ActionError(tag, MalformedState(detail))


class TestCollectErrors:
    """Tests for folding sibling errors."""

    def test_no_errors(self) -> None:
        """Nothing failed yields None."""
        assert collect_errors("parent", []) is None

    def test_single_error_is_not_wrapped(self) -> None:
        """A single failure propagates unchanged."""
        error = _error("child")

        assert collect_errors("parent", [error]) is error

    def test_multiple_errors_are_aggregated(self) -> None:
        """Two or more failures become one aggregate for the parent."""
        errors = [_error("a"), _error("b"), _error("c")]

        folded = collect_errors("parent", errors)

        assert folded is not None
        assert folded.tag == "parent"
        assert isinstance(folded.kind, MultipleChildren)
        assert folded.kind.errors == errors


class TestActionError:
    """Tests for ActionError rendering and flattening."""

    def test_message_names_tag(self) -> None:
        """The message carries the tag and the kind."""
        error = ActionError(
            "create_or_merge_nix_config", IoFailure("write", "/etc/x", OSError(13, "denied"))
        )

        assert "create_or_merge_nix_config" in str(error)
        assert "/etc/x" in str(error)

    def test_leaves_flattens_children_and_aggregates(self) -> None:
        """leaves() returns the underlying failures in tree order."""
        a, b, c = _error("a"), _error("b"), _error("c")
        nested = ActionError("group", MultipleChildren([a, ActionError("inner", ChildFailed(b))]))
        top = ActionError("top", MultipleChildren([nested, c]))

        assert top.leaves() == [a, b, c]

    def test_leaves_of_plain_error(self) -> None:
        """A plain error is its own leaf."""
        error = _error("a")

        assert error.leaves() == [error]


class TestErrorKinds:
    """Tests for the context carried by each kind."""

    def test_command_failure_includes_output(self) -> None:
        """Captured output is part of the message."""
        kind = CommandFailure(["systemctl", "enable", "nix"], 1, "out text", "err text")

        message = str(kind)
        assert "systemctl enable nix" in message
        assert "out text" in message
        assert "err text" in message
        assert kind.returncode == 1

    def test_io_failure_keeps_path_and_source(self) -> None:
        """IoFailure exposes the path and OS error."""
        source = OSError(2, "No such file")
        kind = IoFailure("read", "/nope", source)

        assert kind.path == Path("/nope")
        assert kind.source is source

    def test_already_exists_asks_for_manual_fix(self) -> None:
        """The message tells the operator what to do."""
        kind = AlreadyExists("/etc/nix/nix.conf", "different content")

        assert "manually" in str(kind)

    def test_unknown_url_scheme_lists_supported(self) -> None:
        """Supported schemes appear in the message."""
        kind = UnknownUrlScheme("ftp://example.com/nix.tar.xz")

        assert "ftp://example.com" in str(kind)
        assert "`https://`" in str(kind)

    def test_custom_renders_source(self) -> None:
        """Custom transports an arbitrary error's message."""
        kind = Custom(RuntimeError("opaque failure"))

        assert str(kind) == "opaque failure"

    def test_custom_without_message_uses_type_name(self) -> None:
        """A message-less source falls back to its type name."""
        assert str(Custom(TimeoutError())) == "TimeoutError"
