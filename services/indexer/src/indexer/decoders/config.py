from pydantic import BaseModel, Field

# Exchanges
CETUS_EXCHANGE = "cetus"
BLUEFIN_EXCHANGE = "bluefin"
BLUEMOVE_EXCHANGE = "bluemove"
TURBOS_EXCHANGE = "turbos"
FLOWX_EXCHANGE = "flowx"
MOMENTUM_EXCHANGE = "momentum"
AFTERMATH_EXCHANGE = "aftermath"
OBRIC_EXCHANGE = "obric"

# Lending platforms
NAVI_LENDING = "navi"
SUILEND_LENDING = "suilend"
SCALLOP_LENDING = "scallop"

# Oracles
PYTH_ORACLE = "pyth"

SUI_COIN = "0x2::sui::SUI"
USDC_COIN = "0xdba34672e30cb065b1f93e3ab55318768fd6fef66c15942c9f7cb846e2f900e7::usdc::USDC"
USDT_COIN = "0xc060006111016b8a020ad5b33834984a437aaa7d3c74c18e09a95d48aceab08c::coin::COIN"
WETH_COIN = "0xaf8cd5edc19c4512f4259f0bee101a40d41ebed738ade5874359610ef8eeced5::coin::COIN"
CETUS_COIN = "0x06864a6f921804860930db6ddbe2e16acdf8504495ea7481637a1c8b9a8fe54b::cetus::CETUS"


class ProtocolConfig(BaseModel):
    name: str
    kind: str  # 'dex', 'lending', 'oracle'
    package_ids: list[str] = Field(
        ..., description="All package versions whose events are decoded for this protocol"
    )


class DecoderConfig(BaseModel):
    protocols: list[ProtocolConfig]
    # Navi identifies reserves by a u8 asset id
    navi_assets: dict[int, str] = Field(default_factory=dict)

    def get_protocol(self, name: str) -> ProtocolConfig | None:
        for protocol in self.protocols:
            if protocol.name == name:
                return protocol
        return None

    def package_ids(self, name: str) -> list[str]:
        protocol = self.get_protocol(name)
        return protocol.package_ids if protocol else []


def get_default_config() -> DecoderConfig:
    """Mainnet packages for the supported DEX, lending and oracle protocols."""
    return DecoderConfig(
        protocols=[
            ProtocolConfig(
                name=CETUS_EXCHANGE,
                kind="dex",
                package_ids=[
                    "0x1eabed72c53feb3805120a081dc15963c204dc8d091542592abaf7a35689b2fb",
                ],
            ),
            ProtocolConfig(
                name=BLUEFIN_EXCHANGE,
                kind="dex",
                package_ids=[
                    "0x3492c874c1e3b3e2984e8c41b589e642d4d0a5d6459e5a9cfc2d52fd7c89c267",
                    "0xf1962ddb76a7f9968b4e597278d3cc717a00620cc421b00e3429c5c071eba26a",
                ],
            ),
            ProtocolConfig(
                name=BLUEMOVE_EXCHANGE,
                kind="dex",
                package_ids=[
                    "0xb24b6789e088b876afabca733bed2299fbc9e2d6369be4d1acfa17d8145454d9",
                ],
            ),
            ProtocolConfig(
                name=TURBOS_EXCHANGE,
                kind="dex",
                package_ids=[
                    "0x91bfbc386a41afcfd9b2533058d7e915a1d3829089cc268ff4333d54d6339ca1",
                ],
            ),
            ProtocolConfig(
                name=FLOWX_EXCHANGE,
                kind="dex",
                package_ids=[
                    "0x25929e7f29e0a30eb4e692952ba1b5b65a3a4d65ab5f2a32e1ba3edcb587f26d",
                ],
            ),
            ProtocolConfig(
                name=MOMENTUM_EXCHANGE,
                kind="dex",
                package_ids=[
                    "0x70285592c97965e811e0c6f98dccc3a9c2b4ad854b3594faab9597ada267b860",
                ],
            ),
            ProtocolConfig(
                name=AFTERMATH_EXCHANGE,
                kind="dex",
                package_ids=[
                    "0xc4049b2d1cc0f6e017fda8260e4377cecd236bd7f56a54fee120816e72e2e0dd",
                ],
            ),
            ProtocolConfig(
                name=OBRIC_EXCHANGE,
                kind="dex",
                package_ids=[
                    "0x200e762fa2c49f3dc150813038fbf22fd4f894ac6f23ebe1085c62f2ef97f1ca",
                ],
            ),
            ProtocolConfig(
                name=NAVI_LENDING,
                kind="lending",
                package_ids=[
                    "0xd899cf7d2b5db716bd2cf55599fb0d5ee38a3061e7b6bb6eebf73fa5bc4c81ca",
                    "0xc6374c7da60746002bfee93014aeb607e023b2d6b25c9e55a152b826dbc8c1ce",
                ],
            ),
            ProtocolConfig(
                name=SUILEND_LENDING,
                kind="lending",
                package_ids=[
                    "0xf95b06141ed4a174f239417323bde3f209b972f5930d8521ea38a52aff3a6ddf",
                ],
            ),
            ProtocolConfig(
                name=SCALLOP_LENDING,
                kind="lending",
                package_ids=[
                    "0xefe8b36d5b2e43728cc323298626b83177803521d195cfb11e15b910e892fddf",
                    "0x6e641f0dca8aedab3101d047e96439178f16301bf0b57fe8745086ff1195eb3e",
                ],
            ),
            ProtocolConfig(
                name=PYTH_ORACLE,
                kind="oracle",
                package_ids=[
                    "0x8d97f1cd6ac663735be08d1d2b6d02a159e711586461306ce60a2b7a6a565a9e",
                ],
            ),
        ],
        navi_assets={
            0: SUI_COIN,
            1: "0x5d4b302506645c37ff133b98c4b50a5ae14841659738d6d733d59d0d217a93bf::coin::COIN",
            2: USDT_COIN,
            3: WETH_COIN,
            4: CETUS_COIN,
            10: USDC_COIN,
        },
    )
