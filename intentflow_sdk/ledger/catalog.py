"""
Built-in catalog of mintable Glitch types.
"""
from typing import Dict

from ..models import AssetAbility, AssetAttributes, AssetRarity, AssetType


def _glitch(type_id, name, description, ability, rarity, power, speed, intelligence, luck):
    return AssetType(
        id=type_id,
        name=name,
        description=description,
        base_ability=ability,
        rarity=rarity,
        image=f"/glitches/{type_id}.png",
        attributes=AssetAttributes(power=power, speed=speed, intelligence=intelligence, luck=luck),
    )


ASSET_TYPES: Dict[str, AssetType] = {
    t.id: t for t in (
        _glitch("swap-master", "Swap Master",
                "A glitch specialized in cross-chain token swaps",
                AssetAbility.SWAP, AssetRarity.RARE, 75, 90, 85, 60),
        _glitch("bridge-guardian", "Bridge Guardian",
                "Protects and facilitates cross-chain bridges",
                AssetAbility.BRIDGE, AssetRarity.EPIC, 90, 70, 80, 75),
        _glitch("stake-sentinel", "Stake Sentinel",
                "Manages and optimizes staking operations",
                AssetAbility.STAKE, AssetRarity.COMMON, 60, 65, 90, 70),
        _glitch("yield-harvester", "Yield Harvester",
                "Specializes in yield farming and optimization",
                AssetAbility.YIELD, AssetRarity.LEGENDARY, 85, 80, 95, 90),
        _glitch("fusion-catalyst", "Fusion Catalyst",
                "Enables fusion of multiple glitches",
                AssetAbility.FUSION, AssetRarity.MYTHIC, 100, 85, 100, 95),
    )
}
