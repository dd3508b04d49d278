"""
EKSADOPT TEST SUITE - Structured Output Decoding
------------------------------------------------
Whatever the aws CLI is configured to emit, the chain must hand back the
same canonical payload.
"""

import pytest

from fakes import FakeRunner, fixture_json, fixture_text
from eksadopt.core.errors import DecoderUnavailableError
from eksadopt.discovery.decoders import DecodeError, DecoderChain, JsonDecoder, RuamelYamlDecoder, YqDecoder


class _Missing(RuamelYamlDecoder):
    name = "missing"

    def available(self):
        return False


def test_json_and_yaml_decode_to_same_payload():
    """
    CANONICAL FORM TEST: a YAML response decodes to the dict a JSON
    response would have produced, timestamps included.
    """
    chain = DecoderChain([RuamelYamlDecoder()])
    from_yaml = chain.decode(fixture_text("cluster.yaml"))["cluster"]
    from_json = fixture_json("cluster.json")["cluster"]

    assert from_yaml["name"] == from_json["name"]
    assert from_yaml["version"] == "1.29"
    assert from_yaml["createdAt"].startswith("2024-03-01T10:15:42")
    assert from_yaml["resourcesVpcConfig"]["vpcId"] == from_json["resourcesVpcConfig"]["vpcId"]


def test_json_fast_path_skips_yaml_decoders():
    runner = FakeRunner(binaries=["yq"])
    chain = DecoderChain([YqDecoder(runner)])
    assert chain.decode('{"Account": "123456789012"}') == {"Account": "123456789012"}
    assert runner.calls == []


def test_yq_preferred_when_installed():
    runner = FakeRunner({("yq", "eval"): (0, '{"nodegroups": ["main2"]}', "")}, binaries=["yq"])
    chain = DecoderChain.default(runner)

    assert chain.available() == ["yq", "ruamel"]
    assert chain.decode("nodegroups:\n- main2\n") == {"nodegroups": ["main2"]}
    assert runner.inputs[-1] == "nodegroups:\n- main2\n"


def test_falls_back_to_ruamel_without_yq():
    chain = DecoderChain.default(FakeRunner())
    assert chain.resolve().name == "ruamel"
    assert chain.decode("nodegroups:\n- main2\n") == {"nodegroups": ["main2"]}


def test_no_decoder_available_is_environment_error():
    chain = DecoderChain([_Missing()])
    # JSON still decodes without any YAML decoder
    assert chain.decode("[1, 2]") == [1, 2]
    with pytest.raises(DecoderUnavailableError) as exc:
        chain.decode("key: value\n")
    assert exc.value.exit_code == 2


def test_empty_output_is_none():
    assert DecoderChain([RuamelYamlDecoder()]).decode("   \n") is None


def test_broken_payloads_raise_decode_error():
    with pytest.raises(DecodeError):
        JsonDecoder().decode("{not json")
    with pytest.raises(DecodeError):
        RuamelYamlDecoder().decode("key: [unclosed\n")
    runner = FakeRunner({("yq",): (1, "", "Error: bad file")}, binaries=["yq"])
    with pytest.raises(DecodeError):
        YqDecoder(runner).decode("a: b")
