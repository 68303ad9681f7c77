"""
Configuration and CLI Tests
---------------------------
Wallet file loading and the command-line boundary.
"""

import json
from unittest.mock import Mock, patch

import pytest
from pydantic import ValidationError

from vaultswap import cli
from vaultswap.core.config import DEFAULT_CONTRACTS, ConfigManager
from vaultswap.core.exceptions import ConfigurationError, InsufficientBalanceError
from vaultswap.cow.orders import Order, OrderStatus, PollResult
from vaultswap.swap.allowance import ApprovalMode

WALLET = {
    "safe": "0x1111111111111111111111111111111111111111",
    "roles": "0x2222222222222222222222222222222222222222",
    "roleKey": "0x" + "AB" * 32,
    "chainId": 8453,
    "note": "ignored",
}


class TestConfigManager:

    def test_loads_wallet_json(self, tmp_path):
        (tmp_path / "wallet.json").write_text(json.dumps(WALLET))
        vault = ConfigManager(tmp_path).load_vault_config()

        assert vault.vault_address == WALLET["safe"]
        assert vault.role_key == WALLET["roleKey"].lower()
        assert vault.helper_address == DEFAULT_CONTRACTS["ZodiacHelpers"]
        assert vault.router == DEFAULT_CONTRACTS["AeroUniversalRouter"]

    def test_contract_overrides(self, tmp_path):
        helper = "0x3333333333333333333333333333333333333333"
        (tmp_path / "wallet.yaml").write_text(
            "safe: '{}'\nroles: '{}'\nroleKey: '{}'\ncontracts:\n  ZodiacHelpers: '{}'\n".format(
                WALLET["safe"], WALLET["roles"], WALLET["roleKey"], helper
            )
        )
        manager = ConfigManager(tmp_path)
        assert manager.load_vault_config().helper_address == helper
        assert manager.contracts["CowSettlement"] == DEFAULT_CONTRACTS["CowSettlement"]

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="Config not found"):
            ConfigManager(tmp_path).load_vault_config()

    def test_invalid_role_key(self, tmp_path):
        (tmp_path / "wallet.json").write_text(json.dumps({**WALLET, "roleKey": "0x1234"}))
        with pytest.raises(ConfigurationError):
            ConfigManager(tmp_path).load_vault_config()

    def test_agent_key_prefixed(self, tmp_path):
        (tmp_path / "agent.pk").write_text("ab" * 32 + "\n")
        assert ConfigManager(tmp_path).load_agent_key() == "0x" + "ab" * 32

    def test_agent_key_missing(self, tmp_path):
        with pytest.raises(ConfigurationError):
            ConfigManager(tmp_path).load_agent_key()

    def test_vault_config_is_frozen(self, vault_config):
        with pytest.raises(ValidationError):
            vault_config.chain_id = 1


class TestParser:

    def test_swap_defaults(self):
        args = cli.build_parser().parse_args(["swap", "-f", "ETH", "-t", "USDC", "-a", "0.1"])
        assert args.execute is False
        assert args.approval_mode is ApprovalMode.EXACT
        assert args.simulate is True

    def test_approval_modes_exclusive(self):
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args(
                ["swap", "-f", "ETH", "-t", "USDC", "-a", "1", "--approve-exact", "--approve-max"]
            )

    def test_cow_timeout(self):
        args = cli.build_parser().parse_args(
            ["cow-swap", "--from", "WETH", "--to", "USDC", "--amount", "1", "--timeout", "60", "-x"]
        )
        assert args.timeout == 60
        assert args.execute is True


class TestMain:

    @patch("vaultswap.cli.DirectSwapFlow")
    @patch("vaultswap.cli.build_context")
    def test_error_is_one_line_and_exit_one(self, build_context, flow_cls, capsys):
        flow_cls.return_value.run.side_effect = InsufficientBalanceError("ETH", 10, 1, display="0.000000000000000001 ETH")

        code = cli.main(["swap", "-f", "ETH", "-t", "USDC", "-a", "0.1"])

        assert code == 1
        assert "Error: Insufficient ETH balance in vault" in capsys.readouterr().err
        build_context.assert_called_once_with(None, None, signing=False)

    @patch("vaultswap.cli.build_context")
    def test_bad_config_dir(self, build_context, capsys):
        build_context.side_effect = ConfigurationError("Config not found in nowhere")
        assert cli.main(["balance", "-c", "nowhere"]) == 1
        assert "Config not found" in capsys.readouterr().err

    def test_expired_order_prints_tip(self, capsys, usdc_token, weth_token):
        order = Order(
            sell_token=weth_token.address, buy_token=usdc_token.address,
            receiver="0x" + "11" * 20, sell_amount=1, buy_amount=1, valid_to=1,
            app_data_hash="0x" + "00" * 32, order_uid="0xabc", status=OrderStatus.EXPIRED,
        )
        outcome = Mock(
            notes=[], warnings=[], token_in=weth_token, token_out=usdc_token,
            executed=True, order=order, tx_hashes=["0x01"],
            poll=PollResult(status=OrderStatus.EXPIRED, polls=4),
            status=OrderStatus.EXPIRED, timeout_seconds=1800,
        )
        outcome.summary_lines.return_value = ["SWAP SUMMARY"]

        assert cli.report_auction(outcome) == 1
        assert "higher slippage" in capsys.readouterr().err

    def test_timeout_mentions_late_fill(self, capsys, usdc_token, weth_token):
        outcome = Mock(
            notes=[], warnings=[], token_in=weth_token, token_out=usdc_token,
            executed=True, order=Mock(order_uid="0xabc"), tx_hashes=[],
            status=OrderStatus.TIMEOUT, timeout_seconds=60,
        )
        outcome.summary_lines.return_value = []

        assert cli.report_auction(outcome) == 1
        err = capsys.readouterr().err
        assert "may still be filled" in err
        assert "0xabc" in err
