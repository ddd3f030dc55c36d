import unittest
import os
import subprocess
from unittest import mock

from packaging.version import Version
from solcx.exceptions import SolcNotInstalled

import solc_backend
from solc_backend import (
    BackendResult,
    ExecutableBackend,
    LibSolcBackend,
    SolcNotFoundError,
    native_argv,
)


class TestExecutableBackend(unittest.TestCase):

    @mock.patch("solc_backend.subprocess.run")
    def test_runs_explicit_binary(self, run):
        run.return_value = subprocess.CompletedProcess(["solc"], 0, stdout=b"{}", stderr=b"")
        result = ExecutableBackend(solc_binary="/opt/solc/solc-0.4.26").run(["--version"])

        run.assert_called_once_with(
            ["/opt/solc/solc-0.4.26", "--version"], stdout=subprocess.PIPE, stderr=subprocess.PIPE
        )
        self.assertEqual(result, BackendResult(0, b"{}", b""))
        self.assertTrue(result.ok)

    @mock.patch("solc_backend.subprocess.run")
    @mock.patch("solc_backend.get_executable")
    def test_uses_solcx_executable(self, get_executable, run):
        get_executable.return_value = "/home/user/.solcx/solc-v0.4.26"
        run.return_value = subprocess.CompletedProcess([], 1, stdout=b"", stderr=b"Error: boom")
        result = ExecutableBackend(solc_version="0.4.26").run(["--optimize"])

        get_executable.assert_called_once_with("0.4.26")
        self.assertEqual(run.call_args[0][0], ["/home/user/.solcx/solc-v0.4.26", "--optimize"])
        self.assertFalse(result.ok)
        self.assertEqual(result.stderr, b"Error: boom")

    @mock.patch("solc_backend.get_executable", side_effect=SolcNotInstalled("not installed"))
    @mock.patch.object(solc_backend, "SOLC_BINARY", None)
    def test_missing_solcx_executable(self, _get_executable):
        with self.assertRaises(SolcNotFoundError):
            ExecutableBackend().run(["--version"])

    def test_executable_lookup_comes_from_solcx_install(self):
        import solcx.install
        self.assertIs(solc_backend.get_executable, solcx.install.get_executable)

    @mock.patch("solc_backend.subprocess.run")
    @mock.patch("solc_backend.get_executable", return_value="/home/user/.solcx/solc-v0.4.26")
    @mock.patch.object(solc_backend, "SOLC_VERSION", None)
    @mock.patch.object(solc_backend, "SOLC_BINARY", None)
    def test_default_backend_resolves_through_solcx(self, get_executable, run):
        run.return_value = subprocess.CompletedProcess([], 0, stdout=b"Version: 0.4.26", stderr=b"")
        result = ExecutableBackend().run(["--version"])

        get_executable.assert_called_once_with(None)
        self.assertEqual(run.call_args[0][0], ["/home/user/.solcx/solc-v0.4.26", "--version"])
        self.assertTrue(result.ok)

    @mock.patch("solc_backend.subprocess.run", side_effect=FileNotFoundError("no such file"))
    def test_binary_cannot_start(self, _run):
        with self.assertRaises(SolcNotFoundError):
            ExecutableBackend(solc_binary="/nonexistent/solc").run(["--version"])


class TestNativeArgv(unittest.TestCase):

    def test_builds_null_terminated_array(self):
        args = ["--combined-json", "bin,abi,userdoc,devdoc", "--", "Token.sol"]
        with native_argv(args) as (argc, argv):
            self.assertEqual(argc, 4)
            self.assertEqual([argv[i] for i in range(argc)], [a.encode() for a in args])
            self.assertIsNone(argv[argc])

    def test_released_when_block_raises(self):
        with self.assertRaises(RuntimeError):
            with native_argv(["--version"]) as (argc, argv):
                self.assertEqual(argc, 1)
                raise RuntimeError("native call failed")

    def test_empty_arguments(self):
        with native_argv([]) as (argc, argv):
            self.assertEqual(argc, 0)
            self.assertIsNone(argv[0])


class TestLibSolcBackend(unittest.TestCase):

    def _backend(self, solc_func):
        lib = mock.Mock()
        lib.solc = mock.Mock(side_effect=solc_func)
        with mock.patch("solc_backend.ctypes.CDLL", return_value=lib):
            return LibSolcBackend("/usr/lib/libsolc.so")

    def test_captures_native_output(self):
        seen = []

        def fake_solc(argc, argv):
            seen.extend(argv[i] for i in range(argc))
            os.write(1, b'{"Contracts": {}, "Version": "0.4.26"}')
            os.write(2, b"Warning: unused variable")
            return 0

        result = self._backend(fake_solc).run(["--optimize", "--", "Token.sol"])

        self.assertEqual(seen, [b"--optimize", b"--", b"Token.sol"])
        self.assertEqual(result.status, 0)
        self.assertEqual(result.stdout, b'{"Contracts": {}, "Version": "0.4.26"}')
        self.assertEqual(result.stderr, b"Warning: unused variable")

    def test_failure_status_and_diagnostics(self):
        def fake_solc(argc, argv):
            os.write(2, b"Token.sol:3:5: Error: Undeclared identifier.")
            return 1

        result = self._backend(fake_solc).run(["Token.sol"])
        self.assertFalse(result.ok)
        self.assertIn(b"Undeclared identifier", result.stderr)

    def test_library_cannot_be_loaded(self):
        with mock.patch("solc_backend.ctypes.CDLL", side_effect=OSError("cannot open shared object file")):
            with self.assertRaises(SolcNotFoundError):
                LibSolcBackend("/nonexistent/libsolc.so")


class TestDefaultBackend(unittest.TestCase):

    def test_executable_by_default(self):
        with mock.patch.object(solc_backend, "LIBSOLC_PATH", None):
            self.assertIsInstance(solc_backend.get_default_backend(), ExecutableBackend)

    def test_library_when_configured(self):
        with mock.patch.object(solc_backend, "LIBSOLC_PATH", "/usr/lib/libsolc.so"), \
             mock.patch("solc_backend.LibSolcBackend") as lib_backend:
            backend = solc_backend.get_default_backend()
        lib_backend.assert_called_once_with("/usr/lib/libsolc.so")
        self.assertIs(backend, lib_backend.return_value)


class TestEnsureSolc(unittest.TestCase):

    @mock.patch("solc_backend.solcx.get_solc_version", return_value=Version("0.4.25"))
    @mock.patch("solc_backend.solcx.set_solc_version")
    @mock.patch("solc_backend.solcx.install_solc")
    @mock.patch("solc_backend.solcx.get_installed_solc_versions")
    def test_prefers_installed_minor_release(self, installed, install_solc, set_solc_version, _get):
        installed.return_value = [Version("0.8.20"), Version("0.4.25")]
        selected = solc_backend.ensure_solc("0.4.26")

        self.assertEqual(selected, Version("0.4.25"))
        install_solc.assert_not_called()
        set_solc_version.assert_called_once_with(Version("0.4.25"), silent=True)

    @mock.patch("solc_backend.solcx.get_solc_version", return_value=Version("0.4.26"))
    @mock.patch("solc_backend.solcx.set_solc_version")
    @mock.patch("solc_backend.solcx.install_solc")
    @mock.patch("solc_backend.solcx.get_installed_solc_versions", return_value=[Version("0.8.20")])
    def test_installs_default_version(self, _installed, install_solc, set_solc_version, _get):
        selected = solc_backend.ensure_solc()

        self.assertEqual(selected, Version(solc_backend.DEFAULT_SOLC_VERSION))
        install_solc.assert_called_once_with(Version(solc_backend.DEFAULT_SOLC_VERSION))
        set_solc_version.assert_called_once_with(Version(solc_backend.DEFAULT_SOLC_VERSION), silent=True)


if __name__ == '__main__':
    unittest.main()
