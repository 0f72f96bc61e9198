"""
Tests for the package state healer and its repair signatures.
"""

from pathlib import Path

import pytest

from siliconcraft.adapters.mock import MockAdapter
from siliconcraft.adapters.registry import AdapterRegistry
from siliconcraft.core.errors import PackageStateUnrecoverable
from siliconcraft.core.models.settings import AptRepairSettings
from siliconcraft.core.persistence.run_log import RunLog
from siliconcraft.core.services.package_healer import (
    DEP11_CONF,
    DEP11_CONF_NAME,
    PackageStateHealer,
)
from siliconcraft.core.services.repair_signatures import build_signatures, match_signatures

from tests.fakes import failed, ok

MIRROR_FAILURE = (
    "Err:1 http://in.archive.ubuntu.com/ubuntu jammy InRelease\n"
    "  Temporary failure resolving 'in.archive.ubuntu.com'\n"
    "E: Failed to fetch http://in.archive.ubuntu.com/ubuntu/dists/jammy/InRelease"
)
UNKNOWN_FAILURE = (
    "E: The repository 'https://ppa.launchpad.net/someone/tools/ubuntu jammy Release' "
    "does not have a Release file."
)
DPKG_INTERRUPTED = "E: dpkg was interrupted, you must manually run 'sudo dpkg --configure -a' to correct the problem."

SOURCES = """\
deb http://in.archive.ubuntu.com/ubuntu/ jammy main restricted
deb http://in.archive.ubuntu.com/ubuntu/ jammy-updates main restricted
deb http://security.ubuntu.com/ubuntu jammy-security main
"""


@pytest.fixture
def shell() -> MockAdapter:
    return MockAdapter(adapter_name="shell")


@pytest.fixture
def healer(shell: MockAdapter, apt_root: Path, run_log: RunLog) -> PackageStateHealer:
    registry = AdapterRegistry()
    registry.register(shell)
    return PackageStateHealer(registry, AptRepairSettings(root=apt_root), run_log)


def _sources(apt_root: Path) -> Path:
    path = apt_root / "etc" / "apt" / "sources.list"
    path.write_text(SOURCES)
    return path


class TestRepairSignatures:
    def test_mirror_signature(self):
        sigs = build_signatures(AptRepairSettings())
        assert [s.repair_id for s in match_signatures(sigs, MIRROR_FAILURE)] == ["normalize-mirrors"]

    def test_unknown_failure_matches_nothing(self):
        sigs = build_signatures(AptRepairSettings())
        assert match_signatures(sigs, UNKNOWN_FAILURE) == []

    def test_priority_order(self):
        sigs = build_signatures(AptRepairSettings())
        transcript = DPKG_INTERRUPTED + "\n" + MIRROR_FAILURE + "\nE: Hash Sum mismatch"
        ids = [s.repair_id for s in match_signatures(sigs, transcript)]
        assert ids == ["normalize-mirrors", "reconcile-dpkg", "purge-index-cache"]

    def test_retired_repo_signature(self):
        sigs = build_signatures(AptRepairSettings())
        text = "E: The repository 'http://apt.llvm.org/xenial llvm-toolchain-xenial Release' does not have a Release file."
        assert [s.repair_id for s in match_signatures(sigs, text)] == ["retire-repos"]

    def test_cdrom_and_dep11(self):
        sigs = build_signatures(AptRepairSettings())
        text = (
            "E: The repository 'cdrom://Ubuntu 22.04 LTS jammy Release' does not have a Release file.\n"
            "E: Failed to fetch .../dep11/Components-amd64.yml.xz"
        )
        ids = [s.repair_id for s in match_signatures(sigs, text)]
        assert ids == ["disable-cdrom", "disable-dep11"]

    def test_signatures_follow_settings(self):
        sigs = build_signatures(AptRepairSettings(bad_mirrors=["http://mirror.example.org/ubuntu"]))
        assert match_signatures(sigs, "Could not resolve 'mirror.example.org'")
        assert not match_signatures(sigs, MIRROR_FAILURE)


class TestEnsureHealthy:
    def test_healthy_index_needs_no_repair(self, healer, shell, run_log):
        report = healer.ensure_package_index_healthy()
        assert not report.repaired
        assert len(shell.calls("apt.update")) == 1
        assert run_log.records("REPAIR") == []

    def test_mirror_heal_converges(self, healer, shell, run_log, apt_root):
        sources = _sources(apt_root)
        shell.set_sequence("apt.update", [
            failed("shell", "apt.update", MIRROR_FAILURE, 100),
            ok("shell", "apt.update"),
        ])

        report = healer.ensure_package_index_healthy()

        assert [r.repair_id for r in report.applied] == ["normalize-mirrors"]
        assert len(shell.calls("apt.update")) == 2
        assert len(run_log.records("REPAIR")) == 1
        assert "in.archive.ubuntu.com" not in sources.read_text()
        assert "http://archive.ubuntu.com/ubuntu/ jammy main" in sources.read_text()
        backups = list(sources.parent.glob("sources.list.bak.*"))
        assert len(backups) == 1
        assert backups[0].read_text() == SOURCES

    def test_unmatched_failure_is_fatal_without_retry(self, healer, shell, run_log):
        shell.set_failure("apt.update", UNKNOWN_FAILURE, 100)
        with pytest.raises(PackageStateUnrecoverable) as exc:
            healer.ensure_package_index_healthy()
        assert len(shell.calls("apt.update")) == 1
        assert run_log.records("REPAIR") == []
        assert "does not have a Release file" in str(exc.value)
        assert exc.value.exit_code == 2

    def test_still_failing_after_repair(self, healer, shell, run_log, apt_root):
        _sources(apt_root)
        shell.set_failure("apt.update", MIRROR_FAILURE, 100)
        with pytest.raises(PackageStateUnrecoverable, match="still fails"):
            healer.ensure_package_index_healthy()
        assert len(shell.calls("apt.update")) == 2
        assert len(run_log.records("REPAIR")) == 1

    def test_refresh_runs_privileged(self, healer, shell):
        healer.ensure_package_index_healthy()
        params = shell.calls("apt.update")[0].action.params
        assert params["argv"] == ["apt-get", "update"]
        assert params["needs_sudo"] is True


class TestRepairs:
    def test_normalize_mirrors_idempotent(self, healer, apt_root):
        sources = _sources(apt_root)
        assert "rewrote 1 file(s)" in healer.normalize_mirrors()
        after = sources.read_text()
        assert healer.normalize_mirrors() == "no known-bad mirrors configured"
        assert sources.read_text() == after
        assert len(list(sources.parent.glob("sources.list.bak.*"))) == 1

    def test_normalize_mirrors_deb822(self, healer, apt_root):
        ubuntu = apt_root / "etc" / "apt" / "sources.list.d" / "ubuntu.sources"
        ubuntu.write_text("Types: deb\nURIs: http://in.archive.ubuntu.com/ubuntu\nSuites: noble\n")
        healer.normalize_mirrors()
        assert "URIs: http://archive.ubuntu.com/ubuntu" in ubuntu.read_text()

    def test_disable_cdrom(self, healer, apt_root):
        sources = apt_root / "etc" / "apt" / "sources.list"
        sources.write_text(
            "deb cdrom:[Ubuntu 22.04 LTS _Jammy Jellyfish_]/ jammy main restricted\n"
            "deb http://archive.ubuntu.com/ubuntu jammy main\n"
        )
        assert "commented 1 cdrom entry" in healer.disable_cdrom()
        lines = sources.read_text().splitlines()
        assert lines[0].startswith("# deb cdrom:")
        assert lines[1] == "deb http://archive.ubuntu.com/ubuntu jammy main"
        assert healer.disable_cdrom() == "no active cdrom entries"

    def test_retire_repos(self, healer, apt_root):
        parts = apt_root / "etc" / "apt" / "sources.list.d"
        (parts / "llvm-toolchain-xenial-7.list").write_text("deb http://apt.llvm.org/xenial/ llvm-toolchain-xenial-7 main\n")
        (parts / "docker.list").write_text("deb https://download.docker.com/linux/ubuntu jammy stable\n")

        assert "llvm-toolchain-xenial-7.list" in healer.retire_repos()
        assert (parts / "llvm-toolchain-xenial-7.list.retired").is_file()
        assert not (parts / "llvm-toolchain-xenial-7.list").exists()
        assert (parts / "docker.list").is_file()
        assert healer.retire_repos() == "no retired repositories present"

    def test_disable_dep11(self, healer, apt_root):
        conf = apt_root / "etc" / "apt" / "apt.conf.d" / DEP11_CONF_NAME
        healer.disable_dep11()
        assert conf.read_text() == DEP11_CONF
        assert healer.disable_dep11() == "DEP-11 downloads already disabled"

    def test_reconcile_dpkg(self, healer, shell):
        assert healer.reconcile_dpkg() == "dpkg --configure -a completed"
        params = shell.calls("dpkg.configure")[0].action.params
        assert params["argv"] == ["dpkg", "--configure", "-a"]

    def test_purge_index_cache(self, healer, shell, apt_root):
        lists = apt_root / "var" / "lib" / "apt" / "lists"
        (lists / "lock").write_text("")
        (lists / "archive.ubuntu.com_ubuntu_dists_jammy_InRelease").write_text("x")
        (lists / "archive.ubuntu.com_ubuntu_dists_jammy_main_binary-amd64_Packages").write_text("x")

        assert healer.purge_index_cache() == "removed 2 cached index entries"
        assert sorted(p.name for p in lists.iterdir()) == ["lock", "partial"]
        assert len(shell.calls("apt.clean")) == 1

    def test_repairs_never_touch_workspace(self, healer, apt_root, workspace_root):
        workspace_root.mkdir(parents=True)
        (workspace_root / "sources.list").write_text(SOURCES)
        _sources(apt_root)
        healer.normalize_mirrors()
        assert (workspace_root / "sources.list").read_text() == SOURCES
