"""Tests for the command-line interface."""

import json
import socket
import threading

import pytest
from click.testing import CliRunner

from dynthrift.cli import cli
from dynthrift.proto import BinaryProtocol, MessageType, TType
from dynthrift.proto.transport import Transport

from conftest import FIXTURES_DIR

CALCULATOR = str(FIXTURES_DIR / "calculator.thrift")


class _Connection(Transport):
    """Server side of an accepted socket."""

    def __init__(self, conn: socket.socket) -> None:
        self.conn = conn
        self.buffer = bytearray()

    def read(self, size: int) -> bytes:
        while len(self.buffer) < size:
            chunk = self.conn.recv(4096)
            if not chunk:
                raise EOFError
            self.buffer.extend(chunk)
        data = bytes(self.buffer[:size])
        del self.buffer[:size]
        return data

    def write(self, data: bytes) -> None:
        self.conn.sendall(data)


def _serve_one(server: socket.socket) -> None:
    """Answer one add() or calculate() call."""
    conn, _ = server.accept()
    with conn:
        protocol = BinaryProtocol(_Connection(conn))
        name, _, seqid = protocol.read_message_begin()
        args = {}
        while True:
            ttype, field_id = protocol.read_field_begin()
            if ttype == TType.STOP:
                break
            if ttype == TType.I32:
                args[field_id] = protocol.read_i32()
            else:
                protocol.skip(ttype)

        protocol.write_message_begin(name, MessageType.REPLY, seqid)
        if name == "add":
            protocol.write_field_begin("success", TType.I32, 0)
            protocol.write_i32(args[1] + args[2])
        else:
            protocol.write_field_begin("ouch", TType.STRUCT, 1)
            protocol.write_field_begin("whatOp", TType.I32, 1)
            protocol.write_i32(4)
            protocol.write_field_stop()
        protocol.write_field_stop()


@pytest.fixture
def endpoint():
    server = socket.create_server(("127.0.0.1", 0))
    thread = threading.Thread(target=_serve_one, args=(server,), daemon=True)
    thread.start()
    yield f"127.0.0.1:{server.getsockname()[1]}"
    server.close()
    thread.join(timeout=1)


@pytest.fixture
def broken_idl(tmp_path):
    path = tmp_path / "broken.thrift"
    path.write_text("struct Work { 1: i32 num1")
    return str(path)


@pytest.fixture
def unresolved_idl(tmp_path):
    path = tmp_path / "unresolved.thrift"
    path.write_text("typedef Missing Broken\nservice S { void ping() }")
    return str(path)


def describe_info_command():
    def lists_methods(expect):
        result = CliRunner().invoke(cli, ["info", "-i", CALCULATOR])

        expect(result.exit_code) == 0
        expect("Calculator extends shared.SharedService" in result.output) == True
        expect("calculate" in result.output) == True
        expect("getStruct" in result.output) == True

    def outputs_json(expect):
        result = CliRunner().invoke(cli, ["info", "-i", CALCULATOR, "--json"])

        expect(result.exit_code) == 0
        data = json.loads(result.output)
        add = data["services"]["Calculator"]["add"]
        expect(add["returns"]) == "i32"
        expect(add["arguments"]) == ["1: i32 num1", "2: i32 num2"]
        expect(data["services"]["Calculator"]["zip"]["returns"]) == "oneway void"
        expect(data["typedefs"]["WorkList"]) == "list<Work>"
        expect("InvalidOperation" in data["structs"]) == True

    def reports_missing_files(expect):
        result = CliRunner().invoke(cli, ["info", "-i", "/nonexistent/file.thrift"])

        expect(result.exit_code) == 1
        expect("Error:" in result.output) == True

    def reports_syntax_errors(expect, broken_idl):
        result = CliRunner().invoke(cli, ["info", "-i", broken_idl])

        expect(result.exit_code) == 1
        expect("Error:" in result.output) == True

    def reports_schema_errors(expect, unresolved_idl):
        result = CliRunner().invoke(cli, ["info", "-i", unresolved_idl])

        expect(result.exit_code) == 1
        expect("Broken -> Missing" in result.output) == True


def describe_call_command():
    def prints_the_result(expect, endpoint):
        result = CliRunner().invoke(
            cli, ["call", "-i", CALCULATOR, "-s", "Calculator", "-e", endpoint, "add", "40", "2"]
        )

        expect(result.exit_code) == 0
        expect(json.loads(result.output)) == 42

    def prints_declared_exceptions(expect, endpoint):
        work = json.dumps({"num1": 1, "num2": 0, "op": 4})
        result = CliRunner().invoke(
            cli,
            ["call", "-i", CALCULATOR, "-s", "Calculator", "-e", endpoint, "calculate", "1", work],
        )

        expect(result.exit_code) == 1
        expect(json.loads(result.output)) == {
            "exception": "InvalidOperation",
            "name": "ouch",
            "value": {"whatOp": 4},
        }

    def reads_a_config_file(expect, endpoint, tmp_path):
        config = tmp_path / "client.json"
        config.write_text(
            json.dumps({"endpoint": endpoint, "service": "Calculator", "timeout": 2})
        )

        result = CliRunner().invoke(
            cli, ["call", "-i", CALCULATOR, "-c", str(config), "add", "1", "2"]
        )

        expect(result.exit_code) == 0
        expect(json.loads(result.output)) == 3

    def requires_a_service(expect):
        result = CliRunner().invoke(cli, ["call", "-i", CALCULATOR, "add", "1", "2"])

        expect(result.exit_code) != 0
        expect("No service given" in result.output) == True

    def reports_connection_failures(expect):
        result = CliRunner().invoke(
            cli, ["call", "-i", CALCULATOR, "-s", "Calculator", "-e", "127.0.0.1:1", "nope"]
        )

        expect(result.exit_code) == 1
        expect("Error:" in result.output) == True

    def reports_missing_config_files(expect):
        result = CliRunner().invoke(
            cli, ["call", "-i", CALCULATOR, "-c", "/nonexistent/client.json", "add", "1", "2"]
        )

        expect(result.exit_code) == 1
        expect("Error:" in result.output) == True

    def reports_syntax_errors(expect, broken_idl):
        result = CliRunner().invoke(
            cli, ["call", "-i", broken_idl, "-s", "S", "-e", "127.0.0.1:1", "ping"]
        )

        expect(result.exit_code) == 1
        expect("Error:" in result.output) == True

    def reports_schema_errors(expect, unresolved_idl):
        result = CliRunner().invoke(
            cli, ["call", "-i", unresolved_idl, "-s", "S", "-e", "127.0.0.1:1", "ping"]
        )

        expect(result.exit_code) == 1
        expect("Broken -> Missing" in result.output) == True
