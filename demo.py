#!/usr/bin/env python3
"""
PrivateArt End-to-End Demo

Walks the full investment loop against an in-process API:
1. Register three investors
2. List three artworks
3. Make five private investments
4. Distribute returns for one artwork through the decryption oracle
5. Let a second request time out and refund it

Usage:
    python demo.py
"""

import json
import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "src"))

from api import create_app  # noqa: E402
from art_investment import PrivateArtInvestment  # noqa: E402
from block_context import ManualBlockContext  # noqa: E402
from config import CALLBACK_TIMEOUT, LedgerConfig  # noqa: E402
from payments import format_ether, parse_ether  # noqa: E402

OWNER = "0x" + "00" * 19 + "01"
INVESTORS = {
    "Investor 1": "0x" + "11" * 20,
    "Investor 2": "0x" + "22" * 20,
    "Investor 3": "0x" + "33" * 20,
}

ARTWORKS = [
    {
        "name": "The Starry Night Redux",
        "artist": "Vincent Van Gogh Estate",
        "metadata_ref": "QmYwAPJzv5CZsnA625s3Xf2nemtYgPpHdWEz79ojWnPbdG",
        "total_value": "10",
        "total_shares": 100,
    },
    {
        "name": "Digital Dreams #42",
        "artist": "Anonymous Digital Artist",
        "metadata_ref": "QmPZ9gcCEpqKTo6aq61g2nXGUhM4iCL3ewB6LDXZCtWRnd",
        "total_value": "5",
        "total_shares": 50,
    },
    {
        "name": "Abstract Reality",
        "artist": "Contemporary Collective",
        "metadata_ref": "QmRAQB6YaCyidP37UdDnjFY5vQuiBrcqdyoW1CuDgwxkD4",
        "total_value": "15",
        "total_shares": 150,
    },
]

INVESTMENTS = [
    ("Investor 1", 0, 10),
    ("Investor 2", 0, 20),
    ("Investor 3", 1, 5),
    ("Investor 1", 2, 15),
    ("Investor 2", 2, 25),
]


def section(title):
    print(f"\n{'=' * 60}")
    print(f"  {title}")
    print(f"{'=' * 60}\n")


def pretty(data):
    print(json.dumps(data, indent=2, default=str))


def as_caller(address):
    return {"X-Caller-Address": address}


def main():
    print("PrivateArt - End-to-End Investment Demo")
    print("=" * 60)

    # ──────────────────────────────────────────────────────────
    # Step 0: Create the ledger, app and test client
    # ──────────────────────────────────────────────────────────
    section("Step 0: Initialize")

    block = ManualBlockContext()
    contract = PrivateArtInvestment(config=LedgerConfig(owner=OWNER), block=block)
    gateway = contract.oracle
    client = create_app(contract).test_client()

    health = client.get("/health").get_json()
    print(f"Health: {health['status']}")
    print(f"Owner:  {contract.owner}")
    print(f"Ledger: {contract.address}")

    # ──────────────────────────────────────────────────────────
    # Step 1: Register investors
    # ──────────────────────────────────────────────────────────
    section("Step 1: Register Investors")

    for name, address in INVESTORS.items():
        resp = client.post("/investors", headers=as_caller(address))
        print(f"{name} ({address}): {resp.status_code}")

    stats = client.get("/stats").get_json()
    print(f"\nTotal investors: {stats['total_investors']}")

    # ──────────────────────────────────────────────────────────
    # Step 2: List artworks
    # ──────────────────────────────────────────────────────────
    section("Step 2: List Artworks")

    for artwork in ARTWORKS:
        share_price = format_ether(parse_ether(artwork["total_value"]) // artwork["total_shares"])
        payload = {**artwork, "share_price": share_price}
        resp = client.post("/artworks", json=payload, headers=as_caller(OWNER))
        body = resp.get_json()
        print(f"Artwork {body['artwork_id']}: {artwork['name']}")
        print(f"  Total value:  {artwork['total_value']} ETH")
        print(f"  Share price:  {share_price} ETH")
        print(f"  Total shares: {artwork['total_shares']}")

    # ──────────────────────────────────────────────────────────
    # Step 3: Private investments
    # ──────────────────────────────────────────────────────────
    section("Step 3: Private Investments")

    for name, artwork_id, shares in INVESTMENTS:
        info = client.get(f"/artworks/{artwork_id}").get_json()
        payment = int(info["share_price"]) * shares
        resp = client.post(
            f"/artworks/{artwork_id}/investments",
            json={"share_amount": shares, "value_wei": str(payment)},
            headers=as_caller(INVESTORS[name]),
        )
        print(f"{name} -> artwork {artwork_id}: {shares} shares, {format_ether(payment)} ETH ({resp.status_code})")

    for artwork_id in range(len(ARTWORKS)):
        info = client.get(f"/artworks/{artwork_id}").get_json()
        print(
            f"\nArtwork {artwork_id}: {info['name']}"
            f"\n  Available shares: {info['available_shares']} / {info['total_shares']}"
            f"\n  Investors:        {info['investor_count']}"
        )

    # ──────────────────────────────────────────────────────────
    # Step 4: Distribute returns for artwork 2
    # ──────────────────────────────────────────────────────────
    section("Step 4: Returns Distribution")

    resp = client.post("/artworks/2/distributions", json={"returns": "4"}, headers=as_caller(OWNER))
    request_id = resp.get_json()["request_id"]
    print(f"Decryption request {request_id} submitted for artwork 2")

    cleartexts, proof = gateway.answer(request_id)
    resp = client.post(
        f"/requests/{request_id}/callback",
        json={"cleartexts": "0x" + cleartexts.hex(), "proof": "0x" + proof.hex()},
    )
    distribution = resp.get_json()["distribution"]
    for investor, amount in distribution["payouts"].items():
        print(f"  {investor}: {format_ether(int(amount))} ETH")
    print(f"  Undistributed remainder: {distribution['dust']} wei")

    # ──────────────────────────────────────────────────────────
    # Step 5: Silent oracle and timeout refund for artwork 0
    # ──────────────────────────────────────────────────────────
    section("Step 5: Timeout Refund")

    resp = client.post("/artworks/0/distributions", json={"returns": "3"}, headers=as_caller(OWNER))
    request_id = resp.get_json()["request_id"]
    gateway.drop(request_id)
    print(f"Decryption request {request_id} submitted; the oracle never answers")

    resp = client.post(f"/requests/{request_id}/refund", headers=as_caller(INVESTORS["Investor 3"]))
    print(f"Refund before timeout: {resp.status_code} ({resp.get_json()['reason']})")

    block.advance(CALLBACK_TIMEOUT + 60 * 60)
    resp = client.post(f"/requests/{request_id}/refund", headers=as_caller(INVESTORS["Investor 3"]))
    refund = resp.get_json()["refund"]
    print(f"Refund after 25h: {resp.status_code}")
    print(f"  Per investor: {format_ether(int(refund['refund_per_investor']))} ETH")
    print(f"  Refunded:     {', '.join(refund['refunded'])}")

    # ──────────────────────────────────────────────────────────
    # Final state
    # ──────────────────────────────────────────────────────────
    section("Final State")

    pretty(client.get("/stats").get_json())
    pretty(client.get(f"/requests/{request_id}").get_json())


if __name__ == "__main__":
    main()
