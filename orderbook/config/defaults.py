"""Default upstream endpoint and request headers."""

DEFAULT_ENDPOINT = (
    "https://www.kucoin.com/_api/grey-market-trade/grey/market/orderBook"
)

DEFAULT_QUERY_PARAMS: dict[str, str] = {"lang": "vi_VN"}

DEFAULT_HEADERS: dict[str, str] = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
    ),
    "Accept": "application/json",
    "Content-Type": "application/json",
    "Origin": "https://www.kucoin.com",
    "Referer": "https://www.kucoin.com/vi/pre-market/XPL",
    "Accept-Language": "vi-VN,vi;q=0.9,en-US;q=0.8,en;q=0.7",
}
