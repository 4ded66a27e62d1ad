"""
Tests for the fpm installer

Packages are published into an in-memory registry and installed into a
temporary node_modules tree.
"""

import shutil
import tempfile
import threading
import time
import unittest
from pathlib import Path

from fpm.errors import (
    FpmError, InstallCancelledError, IntegrityError, NoMatchingVersionError
)
from fpm.package_manager import (
    ArchiveExtractor, ArchiveFetcher, DependencyGraph, InstallContext,
    PackageInstaller, RegistryResolver, RemoteRegistry
)

from registry_fixtures import REGISTRY_URL, FakeRegistry, make_tarball

INSTALLER_LOGGER = "fpm.package_manager.installer"


class SlowResolver(RegistryResolver):
    """Resolver that takes long enough for concurrent callers to overlap"""

    def resolve(self, name, version_range):
        time.sleep(0.2)
        return super().resolve(name, version_range)


class InstallerTestCase(unittest.TestCase):
    """Common setup: a fake registry and an empty install tree"""

    resolver_class = RegistryResolver

    def setUp(self):
        self.temp_dir = Path(tempfile.mkdtemp())
        self.install_dir = self.temp_dir / "node_modules"
        self.install_dir.mkdir()
        self.registry = FakeRegistry()
        self.installer = self._make_installer()
        self.graph = DependencyGraph()

    def tearDown(self):
        shutil.rmtree(self.temp_dir)

    def _make_installer(self):
        remote = RemoteRegistry(REGISTRY_URL, session=self.registry.session)
        return PackageInstaller(
            self.resolver_class(remote),
            ArchiveFetcher(self.registry.session),
            ArchiveExtractor(),
            self.install_dir
        )

    def install(self, name, version_range="latest", strict=False, context=None):
        if context is not None:
            return self.installer.install_package(name, version_range, self.graph, context)
        with InstallContext(strict=strict, tmp_root=self.install_dir) as ctx:
            return self.installer.install_package(name, version_range, self.graph, ctx)


class TestPackageInstaller(InstallerTestCase):
    """Test installing packages and their trees"""

    def test_install_single_package(self):
        """Test installing a single package"""
        self.registry.publish("left-pad", "1.3.0", files={"index.js": "module.exports = pad;"})

        version = self.install("left-pad", "^1.0.0")

        self.assertEqual(version, "1.3.0")
        self.assertTrue((self.install_dir / "left-pad" / "index.js").exists())
        self.assertIn("left-pad", self.graph)

    def test_transitive_dependencies(self):
        """Test installing transitive dependencies"""
        self.registry.publish("a", "1.0.0", {"b": "^1.0.0", "c": "^1.0.0"})
        self.registry.publish("b", "1.2.0", {"c": "^1.0.0"})
        self.registry.publish("c", "1.0.0")
        self.registry.publish("c", "1.5.0")

        self.install("a")

        for name in ["a", "b", "c"]:
            self.assertTrue((self.install_dir / name / "package.json").exists())
        self.assertEqual(self.registry.tarball_fetches(), {"a": 1, "b": 1, "c": 1})
        self.assertEqual(sorted(self.graph.edges()), [("a", "b"), ("a", "c"), ("b", "c")])

    def test_name_cycle_installs_each_once(self):
        """Test cyclic declarations install each package once"""
        self.registry.publish("a", "1.0.0", {"b": "^1.0.0"})
        self.registry.publish("b", "1.0.0", {"a": "^1.0.0"})

        version = self.install("a")

        self.assertEqual(version, "1.0.0")
        self.assertEqual(self.registry.tarball_fetches(), {"a": 1, "b": 1})
        self.assertTrue(self.graph.has_edge("a", "b"))
        self.assertFalse(self.graph.has_edge("b", "a"))

    def test_deep_chain(self):
        """Test installing a deep dependency chain"""
        depth = 60
        for i in range(depth):
            deps = {f"pkg-{i + 1}": "^1.0.0"} if i + 1 < depth else {}
            self.registry.publish(f"pkg-{i}", "1.0.0", deps)

        self.install("pkg-0")

        self.assertEqual(len(self.registry.tarball_fetches()), depth)
        self.assertEqual(len(self.graph.edges()), depth - 1)

    def test_second_run_does_no_network_io(self):
        """Test second run does no network I/O"""
        self.registry.publish("a", "1.0.0", {"b": "^1.0.0"})
        self.registry.publish("b", "1.0.0")
        self.install("a")
        requests_before = len(self.registry.session.requests)

        version = self.install("a", "^1.0.0")

        self.assertEqual(version, "1.0.0")
        self.assertEqual(len(self.registry.session.requests), requests_before)

    def test_partial_tree_is_completed(self):
        """Test completing a partially installed tree"""
        self.registry.publish("a", "1.0.0", {"b": "^1.0.0"})
        self.registry.publish("b", "1.0.0", {"c": "^1.0.0"})
        self.registry.publish("c", "1.0.0")
        self.install("a")

        shutil.rmtree(self.install_dir / "c")
        self.install("a")

        self.assertTrue((self.install_dir / "c" / "package.json").exists())
        self.assertEqual(self.registry.tarball_fetches()["c"], 2)

    def test_root_failure_propagates(self):
        """Test failure of the requested package propagates"""
        self.registry.publish("a", "1.0.0")
        with self.assertRaises(NoMatchingVersionError):
            self.install("a", "^2.0.0")

    def test_transitive_failure_is_logged(self):
        """Test transitive failures are logged and skipped"""
        self.registry.publish("a", "1.0.0", {"b": "^1.0.0", "c": "^1.0.0"})
        self.registry.publish("b", "1.0.0", shasum="0" * 40)
        self.registry.publish("c", "1.0.0")

        with self.assertLogs(INSTALLER_LOGGER, level="WARNING") as logs:
            version = self.install("a")

        self.assertEqual(version, "1.0.0")
        self.assertTrue((self.install_dir / "c").exists())
        self.assertFalse((self.install_dir / "b").exists())
        self.assertTrue(any("b@^1.0.0" in line for line in logs.output))

    def test_strict_transitive_failure_raises(self):
        """Test strict mode raises transitive failures"""
        self.registry.publish("a", "1.0.0", {"b": "^1.0.0"})
        self.registry.publish("b", "1.0.0", shasum="0" * 40)

        with self.assertRaises(IntegrityError) as ctx:
            self.install("a", strict=True)

        self.assertEqual(ctx.exception.package, "b")

    def test_failed_package_is_not_retried(self):
        """Test failed packages are not downloaded again"""
        self.registry.publish("a", "1.0.0", {"shared": "^1.0.0"})
        self.registry.publish("c", "1.0.0", {"shared": "^1.0.0"})
        self.registry.publish("shared", "1.0.0", shasum="0" * 40)

        with InstallContext(tmp_root=self.install_dir) as ctx:
            with self.assertLogs(INSTALLER_LOGGER, level="WARNING"):
                self.install("a", context=ctx)
                self.install("c", context=ctx)

            with self.assertRaises(FpmError):
                self.install("shared", "^1.0.0", context=ctx)

        self.assertEqual(self.registry.tarball_fetches()["shared"], 1)

    def test_undecodable_dependency_manifest(self):
        """Test a transitive package.json that is not UTF-8 is logged and skipped"""
        self.registry.publish("a", "1.0.0", {"b": "^1.0.0", "c": "^1.0.0"})
        self.registry.publish("b", "1.0.0", tarball=make_tarball({
            "package.json": b'{"name": "b", "version": "1.0.0", "author": "Jos\xe9"}'
        }))
        self.registry.publish("c", "1.0.0")

        with self.assertLogs(INSTALLER_LOGGER, level="WARNING") as logs:
            version = self.install("a")

        self.assertEqual(version, "1.0.0")
        self.assertTrue((self.install_dir / "b" / "package.json").exists())
        self.assertTrue((self.install_dir / "c" / "package.json").exists())
        self.assertTrue(any("Error reading" in line for line in logs.output))

        # The next run reads the same file again without failing
        requests_before = len(self.registry.session.requests)
        self.assertEqual(self.install("a"), "1.0.0")
        self.assertEqual(len(self.registry.session.requests), requests_before)

    def test_malformed_registry_dependencies(self):
        """Test a registry entry with a non-object dependencies field still installs"""
        self.registry.publish("a", "1.0.0", {"b": "^1.0.0"})
        self.registry.publish("b", "1.0.0")
        self.registry.documents["b"]["versions"]["1.0.0"]["dependencies"] = ["x"]

        self.install("a")

        self.assertTrue((self.install_dir / "b" / "package.json").exists())
        self.assertEqual(self.registry.tarball_fetches(), {"a": 1, "b": 1})

    def test_package_without_manifest(self):
        """Test installing a package without package.json"""
        self.registry.publish("bare", "1.0.0", tarball=make_tarball({"index.js": "1"}))

        with self.assertLogs(INSTALLER_LOGGER, level="WARNING") as logs:
            version = self.install("bare")

        self.assertEqual(version, "1.0.0")
        self.assertTrue((self.install_dir / "bare" / "index.js").exists())
        self.assertTrue(any("package.json not found" in line for line in logs.output))

    def test_nested_workspace_manifests(self):
        """Test dependencies from nested workspace manifests"""
        tarball = make_tarball({
            "package.json": '{"name": "mono", "version": "2.0.0"}',
            "packages/util/package.json": '{"name": "util", "dependencies": {"d": "^1.0.0"}}'
        })
        self.registry.publish("mono", "2.0.0", tarball=tarball)
        self.registry.publish("d", "1.0.0")

        self.install("mono")

        self.assertTrue((self.install_dir / "d" / "package.json").exists())
        self.assertTrue(self.graph.has_edge("mono", "d"))

    def test_scoped_packages(self):
        """Test installing scoped packages"""
        self.registry.publish("@scope/lib", "1.0.0", {"@scope/util": "^1.0.0"})
        self.registry.publish("@scope/util", "1.1.0")

        self.install("@scope/lib")

        self.assertTrue((self.install_dir / "@scope" / "lib" / "package.json").exists())
        self.assertTrue((self.install_dir / "@scope" / "util" / "package.json").exists())

    def test_first_resolved_version_wins(self):
        """Test first resolved version wins"""
        self.registry.publish("a", "1.0.0", {"shared": "^1.0.0"})
        self.registry.publish("shared", "1.0.0")
        self.registry.publish("shared", "2.0.0")

        with InstallContext(tmp_root=self.install_dir) as ctx:
            self.install("a", context=ctx)
            version = self.install("shared", "^2.0.0", context=ctx)

        self.assertEqual(version, "1.0.0")
        self.assertEqual(self.registry.tarball_fetches()["shared"], 1)

    def test_cancelled_context(self):
        """Test cancelled runs stop before any download"""
        self.registry.publish("a", "1.0.0")
        with InstallContext(tmp_root=self.install_dir) as ctx:
            ctx.cancel()
            with self.assertRaises(InstallCancelledError):
                self.install("a", context=ctx)
        self.assertEqual(self.registry.tarball_fetches(), {})

    def test_download_dir_removed(self):
        """Test download directory is removed on exit"""
        with InstallContext(tmp_root=self.install_dir) as ctx:
            download_dir = ctx.download_dir
            self.assertTrue(download_dir.is_dir())
        self.assertFalse(download_dir.exists())


class TestConcurrentInstall(InstallerTestCase):
    """Concurrent requests for one name share a single download"""

    resolver_class = SlowResolver

    def test_same_name_fetched_once(self):
        """Test concurrent requests fetch a package once"""
        self.registry.publish("left-pad", "1.3.0")
        barrier = threading.Barrier(2)
        results = []
        errors = []

        with InstallContext(tmp_root=self.install_dir) as ctx:
            def worker():
                barrier.wait()
                try:
                    results.append(self.install("left-pad", "^1.0.0", context=ctx))
                except Exception as e:
                    errors.append(e)

            threads = [threading.Thread(target=worker) for _ in range(2)]
            for t in threads:
                t.start()
            for t in threads:
                t.join()

        self.assertEqual(errors, [])
        self.assertEqual(results, ["1.3.0", "1.3.0"])
        self.assertEqual(self.registry.tarball_fetches()["left-pad"], 1)


if __name__ == "__main__":
    unittest.main()
