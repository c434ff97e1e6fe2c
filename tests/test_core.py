"""Tests for core infrastructure modules."""

from unittest.mock import MagicMock
import base64
import json
import logging
import pytest
from pydantic import ValidationError

from converge.aws.machine_types import build_ephemeral_devices, ephemeral_device_name
from converge.base.client_cache import ClientCache
from converge.base.context import Context
from converge.base.config import AWSConfig, TerraformConfig, validate_config
from converge.base.delta import changed_fields, compute_changes
from converge.base.exceptions import (
    IdentityConflictError,
    UnknownInstanceTypeError,
    UserDataDecodeError,
    UserDataTooLargeError,
)
from converge.base.logger import ConvergeLogger, StructuredFormatter
from converge.base.resource import (
    Instance,
    MAX_USER_DATA_SIZE,
    SecurityGroup,
    Subnet,
    check_user_data_size,
    decode_user_data,
)
from converge.base.tags import (
    find_name_tag,
    map_ec2_tags_to_map,
    map_to_ec2_tags,
    name_from_iam_arn,
)
from converge.terraform.target import TerraformTarget


# ══════════════════════════════════════════════════════════════════════
# Config
# ══════════════════════════════════════════════════════════════════════

class TestAWSConfig:
    def test_explicit_values(self):
        cfg = AWSConfig(
            aws_access_key_id="AKIA",
            aws_secret_access_key="secret",
            region_name="us-west-2",
            cluster_name="prod",
        )
        assert cfg.aws_access_key_id == "AKIA"
        assert cfg.region_name == "us-west-2"
        assert cfg.cluster_name == "prod"
        assert cfg.cluster_tag_key == "KubernetesCluster"

    def test_env_fallback(self, monkeypatch):
        monkeypatch.setenv("AWS_ACCESS_KEY_ID", "env_key")
        monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "env_secret")
        monkeypatch.setenv("AWS_DEFAULT_REGION", "eu-west-1")
        monkeypatch.setenv("CONVERGE_CLUSTER_NAME", "env-cluster")
        cfg = AWSConfig()
        assert cfg.aws_access_key_id == "env_key"
        assert cfg.region_name == "eu-west-1"
        assert cfg.cluster_name == "env-cluster"

    def test_rejects_unknown_keys(self):
        with pytest.raises(ValueError):
            AWSConfig(project_id="nope")


class TestTerraformConfig:
    def test_env_fallback(self, monkeypatch):
        monkeypatch.setenv("CONVERGE_CLUSTER_NAME", "env-cluster")
        assert TerraformConfig().cluster_name == "env-cluster"


class TestValidateConfig:
    def test_aws(self):
        cfg = validate_config("aws", {"region_name": "us-east-1"})
        assert isinstance(cfg, AWSConfig)

    def test_terraform(self):
        cfg = validate_config("terraform", {"cluster_name": "c"})
        assert isinstance(cfg, TerraformConfig)
        assert cfg.cluster_name == "c"

    def test_unknown_target(self):
        with pytest.raises(ValueError, match="No config model"):
            validate_config("pulumi", {})


# ══════════════════════════════════════════════════════════════════════
# Client Cache
# ══════════════════════════════════════════════════════════════════════

class TestClientCache:
    def test_singleton(self):
        assert ClientCache() is ClientCache()

    def test_caches_handle(self):
        cache = ClientCache()
        cache.clear()
        factory = MagicMock(return_value="cloud")
        c1 = cache.get_or_create("aws", {"region_name": "us-east-1"}, factory)
        c2 = cache.get_or_create("aws", {"region_name": "us-east-1"}, factory)
        assert c1 == c2
        factory.assert_called_once()

    def test_different_config_different_handle(self):
        cache = ClientCache()
        cache.clear()
        factory = MagicMock(side_effect=["cloud_a", "cloud_b"])
        c1 = cache.get_or_create("aws", {"region_name": "us-east-1"}, factory)
        c2 = cache.get_or_create("aws", {"region_name": "eu-west-1"}, factory)
        assert c1 != c2
        assert factory.call_count == 2

    def test_clear(self):
        cache = ClientCache()
        cache.clear()
        factory = MagicMock(side_effect=["v1", "v2"])
        cache.get_or_create("aws", {}, factory)
        cache.clear()
        assert cache.get_or_create("aws", {}, factory) == "v2"


# ══════════════════════════════════════════════════════════════════════
# Logger
# ══════════════════════════════════════════════════════════════════════

class TestConvergeLogger:
    def test_log_operation(self, capfd):
        logger = ConvergeLogger("test_cv")
        logger.logger.setLevel(logging.DEBUG)
        logger.info("found existing instance", task="Instance", resource="node-1", operation="find")
        captured = capfd.readouterr()
        assert "found existing instance" in captured.err
        assert "node-1" in captured.err

    def test_structured_formatter(self):
        fmt = StructuredFormatter()
        record = logging.LogRecord(
            name="test", level=logging.WARNING, pathname="", lineno=0,
            msg="hi", args=(), exc_info=None,
        )
        record.resource = "node-1"
        record.request_id = "abc"
        output = fmt.format(record)
        assert '"resource": "node-1"' in output
        assert '"request_id": "abc"' in output
        assert "target" not in output

    def test_bind_stamps_context(self, caplog):
        logger = ConvergeLogger("test_cv_bind").bind(request_id="pass-1", target="aws")
        with caplog.at_level(logging.INFO, logger="test_cv_bind"):
            logger.info("creating", resource="node-1", operation="run_instances")
            logger.info("tagging", target="terraform")
        first, second = caplog.records
        assert (first.request_id, first.target, first.resource) == ("pass-1", "aws", "node-1")
        assert (second.request_id, second.target) == ("pass-1", "terraform")

    def test_unbound_records_get_request_id(self, caplog):
        logger = ConvergeLogger("test_cv_unbound")
        with caplog.at_level(logging.INFO, logger="test_cv_unbound"):
            logger.info("a")
            logger.info("b")
        ids = [r.request_id for r in caplog.records]
        assert all(len(i) == 12 for i in ids)
        assert ids[0] != ids[1]

    def test_rejects_unknown_context(self):
        with pytest.raises(TypeError, match="provider"):
            ConvergeLogger("test_cv_bad").info("x", provider="aws")

    def test_context_shares_request_id(self, caplog):
        ctx = Context(TerraformTarget())
        with caplog.at_level(logging.INFO, logger="converge"):
            ctx.warn("find", "first", resource="node-1")
            ctx.log.info("second", operation="run")
        assert [r.request_id for r in caplog.records] == [ctx.request_id, ctx.request_id]
        assert {r.target for r in caplog.records} == {"terraform"}
        assert Context(TerraformTarget()).request_id != ctx.request_id


# ══════════════════════════════════════════════════════════════════════
# Resource descriptor
# ══════════════════════════════════════════════════════════════════════

class TestInstanceIdentity:
    def test_assign_once(self):
        inst = Instance(name="node-1")
        inst.assign_id("i-1")
        inst.assign_id("i-1")
        assert inst.id == "i-1"
        assert inst.compare_with_id() == "i-1"

    def test_reassign_conflict(self):
        inst = Instance(name="node-1", id="i-1")
        with pytest.raises(IdentityConflictError):
            inst.assign_id("i-2")
        assert inst.id == "i-1"

    def test_user_data_accepts_text(self):
        assert Instance(user_data="#!/bin/sh\n").user_data == b"#!/bin/sh\n"

    def test_json_user_data_is_base64(self):
        payload = b"\xff\xfe#!/bin/sh\n"
        encoded = base64.b64encode(payload).decode()
        inst = Instance.model_validate_json(f'{{"name": "node-1", "user_data": "{encoded}"}}')
        assert inst.user_data == payload
        assert json.loads(inst.model_dump_json())["user_data"] == encoded
        assert Instance.model_validate_json(inst.model_dump_json()) == inst

    def test_json_user_data_rejects_invalid_base64(self):
        with pytest.raises(ValidationError, match="error decoding EC2 UserData"):
            Instance.model_validate_json('{"user_data": "%%%"}')

    def test_rejects_unknown_fields(self):
        with pytest.raises(ValueError):
            Instance(flavor="large")


class TestUserData:
    def test_decode_round_trip(self):
        payload = b"\x00\xff#cloud-config\n" * 100
        assert decode_user_data(base64.b64encode(payload).decode()) == payload

    def test_decode_wrapped_lines(self):
        payload = b"#cloud-config\n" * 20
        encoded = base64.encodebytes(payload).decode().replace("\n", "\r\n")
        assert "\r\n" in encoded.rstrip()
        assert decode_user_data(encoded) == payload

    def test_decode_invalid(self):
        with pytest.raises(UserDataDecodeError):
            decode_user_data("%%%")

    def test_size_limit(self):
        check_user_data_size(b"x" * MAX_USER_DATA_SIZE)
        with pytest.raises(UserDataTooLargeError, match="16385 bytes"):
            check_user_data_size(b"x" * (MAX_USER_DATA_SIZE + 1))


# ══════════════════════════════════════════════════════════════════════
# Delta
# ══════════════════════════════════════════════════════════════════════

class TestComputeChanges:
    def test_create_is_everything(self):
        e = Instance(id="i-1", name="node-1", instance_type="m5.large")
        changes = compute_changes(None, e)
        assert changes.id is None
        assert changed_fields(changes) == ["name", "instance_type"]
        assert changes is not e

    def test_only_differences(self):
        a = Instance(id="i-1", name="node-1", instance_type="m5.large", image_id="ami-1")
        e = Instance(name="node-1", instance_type="m5.xlarge", image_id="ami-1")
        assert changed_fields(compute_changes(a, e)) == ["instance_type"]

    def test_unset_desired_fields_ignored(self):
        a = Instance(id="i-1", name="node-1", private_ip_address="10.0.0.5")
        e = Instance(name="node-1")
        assert changed_fields(compute_changes(a, e)) == []

    def test_references_compare_by_id(self):
        a = Instance(subnet=Subnet(id="subnet-1"), security_groups=[SecurityGroup(id="sg-1")])
        e = Instance(
            subnet=Subnet(id="subnet-1", name="us-east-1a"),
            security_groups=[SecurityGroup(id="sg-1", name="nodes")],
        )
        assert changed_fields(compute_changes(a, e)) == []

    def test_security_group_order_matters(self):
        a = Instance(security_groups=[SecurityGroup(id="sg-1"), SecurityGroup(id="sg-2")])
        e = Instance(security_groups=[SecurityGroup(id="sg-2"), SecurityGroup(id="sg-1")])
        assert changed_fields(compute_changes(a, e)) == ["security_groups"]

    def test_changed_fields_none(self):
        assert changed_fields(None) == []


# ══════════════════════════════════════════════════════════════════════
# Tags / ARNs
# ══════════════════════════════════════════════════════════════════════

class TestTags:
    def test_map_round_trip(self):
        ec2 = [{"Key": "b", "Value": "2"}, {"Key": "a", "Value": "1"}]
        mapped = map_ec2_tags_to_map(ec2)
        assert mapped == {"a": "1", "b": "2"}
        assert map_to_ec2_tags(mapped) == [{"Key": "a", "Value": "1"}, {"Key": "b", "Value": "2"}]

    def test_find_name_tag(self):
        assert find_name_tag([{"Key": "Name", "Value": "node-1"}]) == "node-1"
        assert find_name_tag([{"Key": "role", "Value": "x"}]) is None
        assert find_name_tag(None) is None

    def test_name_from_iam_arn(self):
        arn = "arn:aws:iam::123456789012:instance-profile/masters.prod"
        assert name_from_iam_arn(arn) == ("masters.prod", True)

    def test_name_from_unexpected_arn(self):
        assert name_from_iam_arn("arn:aws:iam::123456789012:role/x") == ("role/x", False)


# ══════════════════════════════════════════════════════════════════════
# Machine types
# ══════════════════════════════════════════════════════════════════════

class TestEphemeralDevices:
    def test_ebs_only(self):
        assert build_ephemeral_devices("m5.large") == []

    def test_instance_store(self):
        devices = build_ephemeral_devices("d2.xlarge")
        assert devices == [
            {"DeviceName": "/dev/sdc", "VirtualName": "ephemeral0"},
            {"DeviceName": "/dev/sdd", "VirtualName": "ephemeral1"},
            {"DeviceName": "/dev/sde", "VirtualName": "ephemeral2"},
        ]

    def test_device_names(self):
        assert ephemeral_device_name(0) == "/dev/sdc"
        assert ephemeral_device_name(23) == "/dev/sdz"

    def test_unknown(self):
        with pytest.raises(UnknownInstanceTypeError):
            build_ephemeral_devices("z9.mega")
