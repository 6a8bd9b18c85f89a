"""Tests for call framing over a scripted peer."""

import threading

import pytest
from pytest import raises

from dynthrift.proto import (
    ApplicationException,
    ApplicationExceptionType,
    BinaryProtocol,
    Client,
    DeclaredException,
    MemoryTransport,
    MessageType,
    MissingArgumentError,
    ProtocolViolationError,
    SequenceMismatchError,
    SessionFaultedError,
    SessionState,
    TransportError,
    TType,
    TypeMismatchError,
    UnknownMethodError,
)
from dynthrift.proto.binary import write_application_exception


def read_request(request):
    """Decode a request header and its i32 arguments."""
    protocol = BinaryProtocol(MemoryTransport(request))
    name, message_type, seqid = protocol.read_message_begin()
    args = {}
    protocol.read_struct_begin()
    while True:
        ttype, field_id = protocol.read_field_begin()
        if ttype == TType.STOP:
            break
        if ttype == TType.I32:
            args[field_id] = protocol.read_i32()
        else:
            protocol.skip(ttype)
    return name, message_type, seqid, args


def i32_result(value):
    def write(protocol):
        protocol.write_field_begin("success", TType.I32, 0)
        protocol.write_i32(value)
        protocol.write_field_stop()

    return write


def reply_with(message, write_body, message_type=MessageType.REPLY, seqid_offset=0):
    """Handler answering every request with the same body."""

    def handle(request):
        name, _, seqid, _ = read_request(request)
        return message(name, message_type, seqid + seqid_offset, write_body)

    return handle


@pytest.fixture
def adder(message):
    """Handler answering add() with the sum of its arguments."""

    def handle(request):
        name, _, seqid, args = read_request(request)
        return message(name, MessageType.REPLY, seqid, i32_result(args[1] + args[2]))

    return handle


def describe_call():
    def returns_the_result(expect, service, scripted, adder):
        transport = scripted(adder)
        client = Client(service, transport=transport)

        expect(client.call("add", 1, 2)) == 3
        expect(client.state) == SessionState.IDLE

        request = read_request(transport.requests[0])
        expect(request) == ("add", MessageType.CALL, 1, {1: 1, 2: 2})

    def handles_void_methods(expect, service, scripted, message):
        handle = reply_with(message, lambda p: p.write_field_stop())
        client = Client(service, transport=scripted(handle))
        expect(client.call("ping")) == None

    def calls_inherited_methods(expect, service, scripted, message):
        def write_struct(protocol):
            protocol.write_field_begin("success", TType.STRUCT, 0)
            protocol.write_field_begin("key", TType.I32, 1)
            protocol.write_i32(9)
            protocol.write_field_begin("value", TType.STRING, 2)
            protocol.write_string("nine")
            protocol.write_field_stop()
            protocol.write_field_stop()

        client = Client(service, transport=scripted(reply_with(message, write_struct)))
        expect(client.call("getStruct", 9)) == {"key": 9, "value": "nine"}

    def sends_oneway_calls_without_waiting(expect, service, scripted):
        transport = scripted(lambda request: None)
        client = Client(service, transport=transport)

        expect(client.call("zip")) == None

        name, message_type, seqid, _ = read_request(transport.requests[0])
        expect((name, message_type, seqid)) == ("zip", MessageType.ONEWAY, 1)
        expect(client.state) == SessionState.IDLE

    def serializes_concurrent_calls(expect, service, scripted, adder):
        transport = scripted(adder)
        client = Client(service, transport=transport)
        results = []

        def worker(n):
            for _ in range(20):
                results.append(client.call("add", n, n))

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        expect(len(results)) == 80
        expect(sorted(read_request(r)[2] for r in transport.requests)) == list(range(1, 81))


def describe_sequence_ids():
    def increase_by_one(expect, service, scripted, adder):
        transport = scripted(adder)
        client = Client(service, transport=transport)

        client.call("add", 1, 1)
        client.call("add", 2, 2)
        client.call("add", 3, 3)

        expect([read_request(r)[2] for r in transport.requests]) == [1, 2, 3]
        expect(client.seqid) == 3

    def wrap_after_the_int32_maximum(expect, service, scripted, adder):
        client = Client(service, transport=scripted(adder))
        client.seqid = 2**31 - 1

        client.call("add", 1, 1)

        expect(client.seqid) == 1

    def are_used_up_by_unknown_methods(expect, service, scripted, adder):
        transport = scripted(adder)
        client = Client(service, transport=transport)

        with raises(UnknownMethodError):
            client.call("subtract", 1, 2)
        expect(client.seqid) == 1

        client.call("add", 1, 1)
        expect(read_request(transport.requests[0])[2]) == 2

    def fault_the_session_when_mismatched(expect, service, scripted, message):
        handle = reply_with(message, i32_result(0), seqid_offset=1)
        client = Client(service, transport=scripted(handle))

        with raises(SequenceMismatchError) as exinfo:
            client.call("add", 1, 2)

        expect((exinfo.value.expected, exinfo.value.received)) == (1, 2)
        expect(client.state) == SessionState.FAULTED

        with raises(SessionFaultedError):
            client.call("add", 1, 2)


def describe_exceptions():
    def raises_application_exceptions(expect, service, scripted, message):
        exc = ApplicationException("boom", ApplicationExceptionType.INTERNAL_ERROR)
        handle = reply_with(
            message, lambda p: write_application_exception(p, exc), MessageType.EXCEPTION
        )
        client = Client(service, transport=scripted(handle))

        with raises(ApplicationException) as exinfo:
            client.call("ping")

        expect(exinfo.value.message) == "boom"
        expect(exinfo.value.type) == ApplicationExceptionType.INTERNAL_ERROR
        expect(client.state) == SessionState.IDLE

    def raises_declared_exceptions(expect, service, scripted, message):
        def write_ouch(protocol):
            protocol.write_field_begin("ouch", TType.STRUCT, 1)
            protocol.write_field_begin("whatOp", TType.I32, 1)
            protocol.write_i32(4)
            protocol.write_field_begin("why", TType.STRING, 2)
            protocol.write_string("Cannot divide by 0")
            protocol.write_field_stop()
            protocol.write_field_stop()

        client = Client(service, transport=scripted(reply_with(message, write_ouch)))
        work = {"num1": 1, "num2": 0, "op": 4}

        with raises(DeclaredException) as exinfo:
            client.call("calculate", 1, work)

        expect(exinfo.value.type_name) == "InvalidOperation"
        expect(exinfo.value.value) == {"whatOp": 4, "why": "Cannot divide by 0"}
        expect(client.state) == SessionState.IDLE

    def faults_on_unexpected_message_types(expect, service, scripted, message):
        handle = reply_with(message, lambda p: p.write_field_stop(), MessageType.CALL)
        client = Client(service, transport=scripted(handle))

        with raises(ProtocolViolationError):
            client.call("ping")
        expect(client.state) == SessionState.FAULTED

    def fail_only_the_call_on_schema_errors(expect, service, scripted, adder):
        transport = scripted(adder)
        client = Client(service, transport=transport)

        with raises(UnknownMethodError):
            client.call("subtract", 1, 2)
        with raises(MissingArgumentError):
            client.call("add", 1)
        with raises(MissingArgumentError):
            client.call("add", None, 2)
        with raises(TypeMismatchError):
            client.call("add", 1, "abc")

        expect(transport.requests) == []
        expect(client.state) == SessionState.IDLE
        expect(client.call("add", "40", 2)) == 42

    def fault_the_session_on_transport_errors(expect, service, scripted):
        client = Client(service, transport=scripted(lambda request: None))

        with raises(TransportError):
            client.call("add", 1, 2)
        expect(client.state) == SessionState.FAULTED


def describe_lifecycle():
    def requires_an_endpoint_or_transport(service):
        with raises(ValueError):
            Client(service)

    def opens_the_transport_lazily(expect, service, scripted, adder):
        transport = scripted(adder)
        client = Client(service, transport=transport)
        expect(transport.is_open()) == False

        client.call("add", 1, 1)
        client.call("add", 1, 1)

        expect(transport.open_count) == 1

    def close_clears_the_faulted_state(expect, service, scripted, message):
        replies = {"offset": 1}

        def handle(request):
            name, _, seqid, args = read_request(request)
            return message(name, MessageType.REPLY, seqid + replies["offset"], i32_result(args[1]))

        transport = scripted(handle)
        client = Client(service, transport=transport)
        with raises(SequenceMismatchError):
            client.call("add", 5, 0)

        client.close()
        replies["offset"] = 0

        expect(client.call("add", 5, 0)) == 5
        expect(transport.open_count) == 2

    def works_as_a_context_manager(expect, service, scripted, adder):
        transport = scripted(adder)
        with Client(service, transport=transport) as client:
            expect(transport.is_open()) == True
            expect(client.call("add", 2, 2)) == 4
        expect(transport.is_open()) == False
