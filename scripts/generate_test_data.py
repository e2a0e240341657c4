#!/usr/bin/env python3
"""
Generate acquirer export files for the settlement dashboard.

Creates:
  - data/generated_export.csv      (semicolon export with planted anomalies)
  - data/generated_manifest.json   (manifest of every planted anomaly)

Planted anomalies exercise the lenient parser: rows without a transaction
id, rows without both id and establishment (rejected), malformed dates and
amounts, blank modality, repeated rows (duplicates on import) and quoted
fields containing the delimiter.

Reproducible: uses random.seed(42).
"""

from __future__ import annotations

import argparse
import csv
import json
import random
import sys
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from pathlib import Path
from typing import Any

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
SEED = 42

PROJECT_ROOT = Path(__file__).resolve().parent.parent
DATA_DIR = PROJECT_ROOT / "data"

sys.path.insert(0, str(PROJECT_ROOT))

from app.services.ingestion.layout import EXPORT_HEADERS  # noqa: E402

# Acquirer -> MDR percent charged on the gross amount
ACQUIRERS: dict[str, float] = {
    "Cielo": 1.99,
    "Rede": 2.19,
    "Stone": 1.79,
    "GetNet": 2.39,
}

MODALITY_WEIGHTS = [("CREDITO", 0.5), ("DEBITO", 0.3), ("PIX", 0.2)]
CARD_BRANDS = ["VISA", "MASTERCARD", "ELO", "AMEX", "HIPERCARD"]
ESTABLISHMENTS = [
    ("PADARIA PAO DOURADO LTDA", "12.345.678/0001-90", "5462"),
    ("FARMACIA BEM ESTAR", "23.456.789/0001-01", "5912"),
    ("AUTO POSTO AVENIDA", "34.567.890/0001-12", "5541"),
    ("MERCADO BOM PRECO; FILIAL 2", "45.678.901/0001-23", "5411"),
]

DATE_START = datetime(2025, 1, 13)
DATE_END = datetime(2025, 1, 19, 23, 59, 59)

CENTS = Decimal("0.01")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _money(value: Decimal) -> str:
    """Format as the acquirer does: ``" 1.234,56"`` with a leading space."""
    quantized = value.quantize(CENTS, rounding=ROUND_HALF_UP)
    grouped = f"{quantized:,.2f}".replace(",", "_").replace(".", ",").replace("_", ".")
    return f" {grouped}"


def _date(value: datetime) -> str:
    """Format as ``DD/MM/YYYY  HH:MM:SS`` (acquirers pad with two spaces)."""
    return value.strftime("%d/%m/%Y  %H:%M:%S")


def _random_datetime(rng: random.Random, start: datetime, end: datetime) -> datetime:
    """Return a random datetime between start and end."""
    delta = end - start
    return start + timedelta(seconds=rng.randint(0, int(delta.total_seconds())))


def _weighted_choice(rng: random.Random, choices: list[tuple[str, float]]) -> str:
    """Pick from a list of (value, weight) tuples."""
    values, weights = zip(*choices)
    return rng.choices(values, weights=weights, k=1)[0]


# ---------------------------------------------------------------------------
# Rows
# ---------------------------------------------------------------------------


def generate_rows(count: int = 200, seed: int = SEED) -> list[dict[str, str]]:
    """Generate *count* well-formed export rows keyed by export header."""
    rng = random.Random(seed)
    rows: list[dict[str, str]] = []

    for number in range(1, count + 1):
        acquirer = rng.choice(list(ACQUIRERS))
        establishment, tax_id, mcc = rng.choice(ESTABLISHMENTS)
        modality = _weighted_choice(rng, MODALITY_WEIGHTS)
        gross = Decimal(str(round(rng.uniform(5, 2500), 2)))
        net = gross - (gross * Decimal(str(ACQUIRERS[acquirer])) / 100)
        txn_time = _random_datetime(rng, DATE_START, DATE_END)
        installments = rng.choice([1, 1, 1, 2, 3, 6, 12]) if modality == "CREDITO" else 1

        row = {header: "" for header in EXPORT_HEADERS}
        row.update(
            {
                "DATA EXPORTACÃO": _date(DATE_END + timedelta(hours=8)),
                "DATA DA TRANSAÇÃO": _date(txn_time),
                "ID DA TRANSAÇÃO": f"TXN{20250113000000 + number}",
                "ID DA TRANSAÇÃO NA ADQUIRENTE": f"{acquirer[:3].upper()}-{rng.randint(10**8, 10**9 - 1)}",
                "ESTABELECIMENTO": establishment,
                "CPF/CNPJ ESTABELECIMENTO": tax_id,
                "MCC DO ESTABELECIMENTO": mcc,
                "CREDENCIADORA": "SUBADQUIRENTE PAGAMENTOS SA",
                "CPF/CNPJ CREDENCIADORA": "98.765.432/0001-10",
                "CARTÃO": "" if modality == "PIX" else f"****{rng.randint(1000, 9999)}",
                "MODALIDADE": modality,
                "PARCELAS": f"{installments}x",
                "BANDEIRA": "" if modality == "PIX" else rng.choice(CARD_BRANDS),
                "SERIAL DO EQUIPAMENTO": f"SN{rng.randint(100000, 999999)}",
                "MODELO DO EQUIPAMENTO": rng.choice(["S920", "MOVE5000", "A8"]),
                "VALOR BRUTO": _money(gross),
                "VALOR LÍQUIDO": _money(net),
                "ADQUIRENTE": acquirer,
                "CANAL": rng.choice(["POS", "LINK", "TEF"]),
                "STATUS": "APROVADA",
                "NSU": str(rng.randint(100000, 999999)),
                "VALOR ORIGINAL": _money(gross),
            }
        )
        rows.append(row)

    return rows


def plant_anomalies(
    rows: list[dict[str, str]],
    seed: int = SEED,
) -> tuple[list[dict[str, str]], dict[str, Any]]:
    """Corrupt a few rows in place and append duplicates.

    Returns the rows to write and a manifest of what was planted.
    """
    rng = random.Random(seed + 1)
    picks = rng.sample(range(len(rows)), 6)
    manifest: dict[str, Any] = {
        "generated_at": datetime.now().isoformat(),
        "seed": seed,
        "missing_transaction_id": [],
        "rejected_rows": [],
        "invalid_dates": [],
        "invalid_amounts": [],
        "blank_modality": [],
        "duplicates": [],
    }

    # File line numbers count the header as line 1
    def line_of(index: int) -> int:
        return index + 2

    idx = picks[0]
    rows[idx]["ID DA TRANSAÇÃO"] = ""
    manifest["missing_transaction_id"].append(line_of(idx))

    idx = picks[1]
    rows[idx]["ID DA TRANSAÇÃO"] = ""
    rows[idx]["ESTABELECIMENTO"] = ""
    manifest["rejected_rows"].append(line_of(idx))

    idx = picks[2]
    rows[idx]["DATA DA TRANSAÇÃO"] = "31/02/2025 25:61:00"
    manifest["invalid_dates"].append(line_of(idx))

    idx = picks[3]
    rows[idx]["VALOR BRUTO"] = "abc"
    manifest["invalid_amounts"].append(line_of(idx))

    idx = picks[4]
    rows[idx]["MODALIDADE"] = ""
    manifest["blank_modality"].append(line_of(idx))

    idx = picks[5]
    if rows[idx]["ID DA TRANSAÇÃO"]:
        rows.append(dict(rows[idx]))
        manifest["duplicates"].append(rows[idx]["ID DA TRANSAÇÃO"])

    return rows, manifest


def write_export(rows: list[dict[str, str]], path: Path) -> None:
    """Write rows as a BOM-prefixed, semicolon-delimited export."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", newline="", encoding="utf-8-sig") as f:
        writer = csv.DictWriter(
            f,
            fieldnames=EXPORT_HEADERS,
            delimiter=";",
            lineterminator="\r\n",
        )
        writer.writeheader()
        writer.writerows(rows)


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("--rows", type=int, default=200, help="Number of base rows")
    parser.add_argument("--seed", type=int, default=SEED)
    parser.add_argument("--out", type=Path, default=DATA_DIR)
    args = parser.parse_args(argv)

    rows, manifest = plant_anomalies(generate_rows(args.rows, args.seed), args.seed)
    export_path = args.out / "generated_export.csv"
    write_export(rows, export_path)
    with open(args.out / "generated_manifest.json", "w", encoding="utf-8") as f:
        json.dump(manifest, f, indent=2, ensure_ascii=False)

    print(f"Wrote {len(rows)} rows to {export_path}")
    print(f"Planted: {json.dumps({k: v for k, v in manifest.items() if isinstance(v, list)})}")


if __name__ == "__main__":
    main()
