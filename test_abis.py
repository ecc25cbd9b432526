import json

import pytest

from garden_analytics.adapters.dfk import abis


def test_swap_topic_matches_uniswap_v2():
    assert abis.event_topic(abis.SWAP_EVENT_SIGNATURE) == (
        '0xd78ad95fa46c994b6551d0da85fc275fe613ce37657fb8d5e3d130840159d822'
    )


def test_address_topic_is_left_padded():
    topic = abis.address_topic('0x04b9dA42306B023f3572e106B11D82aAd9D32EBb')
    assert topic == '0x' + '0' * 24 + '04b9da42306b023f3572e106b11d82aad9d32ebb'


def test_bundled_abi_is_used_without_local_file(tmp_path, monkeypatch):
    monkeypatch.setattr(abis, 'ABIS_DIR', tmp_path)
    assert abis.get_abi('quest_core') is abis.QUEST_CORE_ABI


def test_local_abi_file_overrides_bundled(tmp_path, monkeypatch):
    full_abi = [{"type": "function", "name": "getQuest", "inputs": [], "outputs": []}]
    (tmp_path / "quest_core_abi.json").write_text(json.dumps(full_abi))
    monkeypatch.setattr(abis, 'ABIS_DIR', tmp_path)

    assert abis.get_abi('quest_core') == full_abi


def test_unreadable_local_abi_falls_back(tmp_path, monkeypatch):
    (tmp_path / "erc20_abi.json").write_text("{not json")
    monkeypatch.setattr(abis, 'ABIS_DIR', tmp_path)
    assert abis.get_abi('erc20') is abis.ERC20_ABI


def test_unknown_abi():
    with pytest.raises(KeyError):
        abis.get_abi('unknown_contract')
