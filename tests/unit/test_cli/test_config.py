# SPDX-License-Identifier: LGPL-3.0-or-later
"""
Unit Tests for CLI Configuration Loading

Tests YAML configuration file loading, environment overlay and two-phase parsing.
"""

import io
import logging
import tempfile
import unittest
from contextlib import redirect_stdout
from pathlib import Path

import yaml

from ovaimporter.cli.args import parse_args_with_config
from ovaimporter.config.config_loader import ImporterConfig
from ovaimporter.core.exceptions import Fatal

LOG = logging.getLogger("ovaimporter.tests")

REQUIRED = ["--url", "vc.example.com", "--user", "admin", "--password", "secret", "--ova", "web.ova"]


class TestCLIConfigTwoPhaseParse(unittest.TestCase):
    """Test two-phase config parsing (config file + env + CLI args)"""

    def test_config_satisfies_required_settings(self):
        """Config file can provide everything argparse would otherwise demand"""
        with tempfile.TemporaryDirectory() as td:
            cfg = Path(td) / "cfg.yaml"
            cfg.write_text(
                "url: vc.example.com\nuser: admin\npassword: secret\nova:\n  - a.ova\n  - b.ova\n",
                encoding="utf-8",
            )

            args, conf, _logger = parse_args_with_config(["--config", str(cfg)], logger=LOG, environ={})

            self.assertEqual(args.url, "vc.example.com")
            self.assertEqual(args.ova, ["a.ova", "b.ova"])
            self.assertIn("password", conf)

    def test_precedence_cli_over_env_over_file(self):
        """CLI flags beat OVAIMPORTER_* env, which beats the YAML file"""
        with tempfile.TemporaryDirectory() as td:
            cfg = Path(td) / "cfg.yaml"
            cfg.write_text(
                """
url: file.example.com
user: file-user
password: file-pass
ova: file.ova
datastore: file-ds
network: file-net
timeout: 9
""",
                encoding="utf-8",
            )
            environ = {
                "OVAIMPORTER_USER": "env-user",
                "OVAIMPORTER_DATASTORE": "env-ds",
                "OVAIMPORTER_TIMEOUT": "7",
            }

            args, _conf, _logger = parse_args_with_config(
                ["--config", str(cfg), "--datastore", "cli-ds"], logger=LOG, environ=environ
            )

            self.assertEqual(args.url, "file.example.com")
            self.assertEqual(args.user, "env-user")
            self.assertEqual(args.datastore, "cli-ds")
            self.assertEqual(args.network, "file-net")
            self.assertEqual(args.timeout_minutes, 7)
            self.assertEqual(args.ova, ["file.ova"])

    def test_defaults_without_config(self):
        args, conf, _logger = parse_args_with_config(REQUIRED, logger=LOG, environ={})
        cfg = ImporterConfig.from_namespace(args)

        self.assertEqual(conf, {})
        self.assertEqual(cfg.timeout_minutes, 5)
        self.assertEqual(cfg.timeout_s, 300.0)
        self.assertEqual(cfg.response_dir, "./")
        self.assertFalse(cfg.insecure)
        self.assertEqual(cfg.deploy.disk_provisioning, "thin")
        self.assertEqual(cfg.deploy.network_placeholder, "nic0")
        self.assertEqual(cfg.inventory_names()["folder"], "")

    def test_comma_separated_ova_flag(self):
        args, _conf, _logger = parse_args_with_config(
            REQUIRED[:-1] + ["a.ova,b.ova", "c.ova"], logger=LOG, environ={}
        )
        self.assertEqual(ImporterConfig.from_namespace(args).ova, ("a.ova", "b.ova", "c.ova"))

    def test_nested_deploy_section(self):
        with tempfile.TemporaryDirectory() as td:
            cfg = Path(td) / "cfg.yaml"
            cfg.write_text("deploy:\n  disk-provisioning: thick\n  remove_nics: yes\n", encoding="utf-8")

            args, _conf, _logger = parse_args_with_config(["--config", str(cfg)] + REQUIRED, logger=LOG, environ={})
            deploy = ImporterConfig.from_namespace(args).deploy

            self.assertEqual(deploy.disk_provisioning, "thick")
            self.assertTrue(deploy.remove_nics)

    def test_missing_required_settings_is_usage_error(self):
        with redirect_stdout(io.StringIO()):
            with self.assertRaises(SystemExit) as cm:
                parse_args_with_config(["--url", "vc"], logger=LOG, environ={})
        self.assertEqual(cm.exception.code, 2)

    def test_missing_config_file_is_fatal(self):
        with self.assertRaises(Fatal) as cm:
            parse_args_with_config(["--config", "/nonexistent/ovaimporter.yaml"], logger=LOG, environ={})
        self.assertEqual(cm.exception.code, 2)

    def test_dump_config_redacts_password(self):
        environ = {"OVAIMPORTER_URL": "vc.example.com", "OVAIMPORTER_PASSWORD": "hunter2"}
        out = io.StringIO()
        with redirect_stdout(out):
            with self.assertRaises(SystemExit) as cm:
                parse_args_with_config(["--dump-config"], logger=LOG, environ=environ)

        self.assertEqual(cm.exception.code, 0)
        dumped = yaml.safe_load(out.getvalue())
        self.assertEqual(dumped["url"], "vc.example.com")
        self.assertEqual(dumped["password"], "***REDACTED***")
        self.assertNotIn("hunter2", out.getvalue())


if __name__ == "__main__":
    unittest.main()
