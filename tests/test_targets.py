"""Tests for the Target model and the YAML target registry."""

from __future__ import annotations

import textwrap
import threading
from pathlib import Path
from unittest.mock import patch

import pytest
import yaml

from src.targets.registry import (
    Protocol,
    Target,
    TargetRegistry,
    default_targets,
)


@pytest.fixture
def sample_yaml(tmp_path: Path) -> Path:
    """Create a minimal targets.yaml for testing."""
    path = tmp_path / "targets.yaml"
    path.write_text(textwrap.dedent("""\
        check_interval_seconds: 10
        timeout_seconds: 2.5
        targets:
          - name: Google DNS
            host: 8.8.8.8
            protocol: ping
          - name: Web
            host: example.com
            port: 443
            protocol: TCP
          - name: Resolver
            host: 1.1.1.1
            port: 53
            protocol: udp
            enabled: false
    """), encoding="utf-8")
    return path


# ── Protocol / Target ────────────────────────────────────────────────────────


class TestProtocol:
    def test_parse_case_insensitive(self) -> None:
        assert Protocol.parse("PING") is Protocol.PING
        assert Protocol.parse(" Tcp ") is Protocol.TCP
        assert Protocol.parse(Protocol.UDP) is Protocol.UDP

    def test_parse_unknown(self) -> None:
        with pytest.raises(ValueError, match="Unknown protocol"):
            Protocol.parse("icmpv9")

    def test_defaults(self) -> None:
        assert Protocol.PING.default_port is None
        assert Protocol.TCP.default_port == 80
        assert Protocol.UDP.default_port == 53
        assert Protocol.TCP.label == "TCP"

    def test_udp_is_weak_signal(self) -> None:
        assert Protocol.PING.confirms_reachability
        assert Protocol.TCP.confirms_reachability
        assert not Protocol.UDP.confirms_reachability


class TestTarget:
    def test_effective_port(self) -> None:
        assert Target(name="a", host="h", protocol=Protocol.TCP).effective_port == 80
        assert Target(name="a", host="h", port=8080, protocol=Protocol.TCP).effective_port == 8080
        assert Target(name="a", host="h").effective_port is None

    def test_address(self) -> None:
        assert Target(name="a", host="h", port=22).address == "h:22"
        assert Target(name="a", host="h").address == "h"

    def test_frozen(self) -> None:
        t = Target(name="a", host="h")
        with pytest.raises(AttributeError):
            t.host = "other"

    def test_from_dict(self) -> None:
        t = Target.from_dict({"name": " Web ", "host": "example.com", "port": "443", "protocol": "tcp"})
        assert t == Target(name="Web", host="example.com", port=443, protocol=Protocol.TCP, enabled=True)

    @pytest.mark.parametrize(
        "raw",
        [
            {"name": "", "host": "h"},
            {"name": "n", "host": "  "},
            {"name": "n", "host": "h", "port": 0},
            {"name": "n", "host": "h", "port": 70000},
            {"name": "n", "host": "h", "port": "abc"},
            {"name": "n", "host": "h", "protocol": "http"},
            {"name": "n", "host": "h", "enabled": "maybe"},
            {"name": "n", "host": "h", "enabled": 2},
        ],
    )
    def test_from_dict_rejects(self, raw) -> None:
        with pytest.raises(ValueError):
            Target.from_dict(raw)

    @pytest.mark.parametrize(
        ("value", "expected"),
        [(True, True), (False, False), ("false", False), ("No", False), ("off", False),
         ("true", True), ("yes", True), (0, False), (1, True), (None, True)],
    )
    def test_enabled_flag(self, value, expected) -> None:
        assert Target.from_dict({"name": "n", "host": "h", "enabled": value}).enabled is expected

    def test_round_trip(self) -> None:
        t = Target(name="Resolver", host="1.1.1.1", port=53, protocol=Protocol.UDP, enabled=False)
        assert Target.from_dict(t.to_dict()) == t


# ── Registry ─────────────────────────────────────────────────────────────────


class TestTargetRegistry:
    def test_load(self, sample_yaml: Path) -> None:
        reg = TargetRegistry(sample_yaml)
        targets = reg.load()
        assert [t.name for t in targets] == ["Google DNS", "Web", "Resolver"]
        assert targets[1].protocol is Protocol.TCP
        assert targets[2].enabled is False
        assert reg.check_interval_seconds == 10
        assert reg.timeout_seconds == 2.5

    def test_load_is_cached(self, sample_yaml: Path) -> None:
        reg = TargetRegistry(sample_yaml)
        first = reg.load()
        sample_yaml.write_text("targets: []\n", encoding="utf-8")
        assert reg.load() is first
        assert reg.load(force=True) == []

    def test_missing_file(self, tmp_path: Path) -> None:
        reg = TargetRegistry(tmp_path / "nope.yaml")
        assert reg.load() == []

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.yaml"
        path.write_text("targets: [unclosed\n", encoding="utf-8")
        assert TargetRegistry(path).load() == []

    def test_skips_malformed_entries(self, tmp_path: Path) -> None:
        path = tmp_path / "targets.yaml"
        path.write_text(yaml.dump({"targets": [
            {"name": "ok", "host": "10.0.0.1"},
            {"name": "no host"},
            "not-a-mapping",
            {"name": "bad proto", "host": "h", "protocol": "smtp"},
        ]}), encoding="utf-8")
        targets = TargetRegistry(path).load()
        assert [t.name for t in targets] == ["ok"]

    def test_ignores_invalid_settings(self, tmp_path: Path) -> None:
        path = tmp_path / "targets.yaml"
        path.write_text("check_interval_seconds: -5\ntimeout_seconds: soon\ntargets: []\n", encoding="utf-8")
        reg = TargetRegistry(path)
        reg.load()
        assert reg.check_interval_seconds is None
        assert reg.timeout_seconds is None

    def test_load_or_create_writes_defaults(self, tmp_path: Path) -> None:
        path = tmp_path / "sub" / "targets.yaml"
        reg = TargetRegistry(path)
        targets = reg.load_or_create()
        assert path.exists()
        assert targets == default_targets()
        assert reg.check_interval_seconds == 30
        assert reg.timeout_seconds == 5.0

        reloaded = TargetRegistry(path)
        assert reloaded.load() == default_targets()
        assert reloaded.check_interval_seconds == 30

    def test_load_or_create_keeps_existing(self, sample_yaml: Path) -> None:
        assert len(TargetRegistry(sample_yaml).load_or_create()) == 3

    def test_default_targets(self) -> None:
        names = [t.name for t in default_targets()]
        assert names == ["Google DNS", "Cloudflare DNS", "Local HTTP"]
        assert default_targets()[2].enabled is False

    def test_add_and_save(self, sample_yaml: Path) -> None:
        reg = TargetRegistry(sample_yaml)
        reg.load()
        reg.add_target(Target(name="New", host="192.168.1.1", port=22, protocol=Protocol.TCP))
        reg.save()

        raw = yaml.safe_load(sample_yaml.read_text(encoding="utf-8"))
        assert raw["check_interval_seconds"] == 10
        assert raw["targets"][-1] == {
            "name": "New", "host": "192.168.1.1", "port": 22, "protocol": "tcp", "enabled": True,
        }

    def test_remove_and_update_by_index(self, sample_yaml: Path) -> None:
        reg = TargetRegistry(sample_yaml)
        reg.load()
        reg.remove_target(99)  # out of range — ignored
        reg.update_target(99, Target(name="x", host="y"))
        assert len(reg.targets) == 3

        reg.update_target(0, Target(name="Quad9", host="9.9.9.9"))
        reg.remove_target(1)
        assert [t.name for t in reg.targets] == ["Quad9", "Resolver"]

    def test_remove_matching(self, sample_yaml: Path) -> None:
        reg = TargetRegistry(sample_yaml)
        targets = reg.load()
        web = targets[1]
        assert reg.remove_matching(web) is True
        assert reg.remove_matching(web) is False
        assert web not in reg.targets

    def test_replace_matching(self, sample_yaml: Path) -> None:
        reg = TargetRegistry(sample_yaml)
        old = reg.load()[0]
        new = Target(name="Google DNS", host="8.8.4.4")
        assert reg.replace_matching(old, new) is True
        assert reg.targets[0] == new

        stray = Target(name="stray", host="h")
        assert reg.replace_matching(Target(name="gone", host="g"), stray) is False
        assert reg.targets[-1] == stray

    def test_concurrent_writers_keep_every_entry(self, tmp_path: Path) -> None:
        reg = TargetRegistry(tmp_path / "targets.yaml")

        def writer(i: int) -> None:
            with reg.lock:
                reg.add_target(Target(name=f"t{i}", host=f"10.0.0.{i}"))
                reg.save()

        threads = [threading.Thread(target=writer, args=(i,)) for i in range(20)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        saved = TargetRegistry(reg.path).load()
        assert sorted(t.name for t in saved) == sorted(f"t{i}" for i in range(20))
        assert list(tmp_path.iterdir()) == [reg.path]

    def test_failed_save_keeps_previous_file(self, sample_yaml: Path) -> None:
        before = sample_yaml.read_text(encoding="utf-8")
        reg = TargetRegistry(sample_yaml)
        reg.load()
        reg.add_target(Target(name="New", host="h"))
        with patch("src.targets.registry.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(OSError):
                reg.save()
        assert sample_yaml.read_text(encoding="utf-8") == before
        assert not sample_yaml.with_name("targets.yaml.tmp").exists()
