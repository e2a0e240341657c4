"""Column layout of the acquirer export file.

The same 32 columns are read by the record parser and written by the CSV
exporter, so a file exported by the dashboard can be imported again.
"""

from __future__ import annotations

# Export header -> TransactionCreate field, in file order
EXPORT_COLUMNS: list[tuple[str, str]] = [
    ("DATA EXPORTACÃO", "export_timestamp"),
    ("DATA DA TRANSAÇÃO", "transaction_timestamp"),
    ("DATA DO ESTORNO", "chargeback_timestamp"),
    ("ID DA TRANSAÇÃO", "transaction_id"),
    ("ID DA TRANSAÇÃO NA ADQUIRENTE", "acquirer_transaction_id"),
    ("ESTABELECIMENTO", "establishment_name"),
    ("CPF/CNPJ ESTABELECIMENTO", "establishment_tax_id"),
    ("MCC DO ESTABELECIMENTO", "establishment_mcc"),
    ("CREDENCIADORA", "accreditor"),
    ("CPF/CNPJ CREDENCIADORA", "accreditor_tax_id"),
    ("REPRESENTANTE", "representative"),
    ("CPF/CNPJ REPRESENTANTE", "representative_tax_id"),
    ("PORTADOR", "cardholder"),
    ("CARTÃO", "card_number"),
    ("CLIENTE", "customer"),
    ("MODALIDADE", "modality"),
    ("PARCELAS", "installments"),
    ("BANDEIRA", "card_brand"),
    ("SERIAL DO EQUIPAMENTO", "equipment_serial"),
    ("NÚMERO DE IDENTIFICAÇÃO DO EQUIPAMENTO", "equipment_id_number"),
    ("MODELO DO EQUIPAMENTO", "equipment_model"),
    ("VALOR BRUTO", "gross_amount"),
    ("VALOR LÍQUIDO", "net_amount"),
    ("ADQUIRENTE", "acquirer_name"),
    ("CANAL", "channel"),
    ("STATUS", "status"),
    ("MOTIVO DE FALHA", "failure_reason"),
    ("PLANO", "plan"),
    ("NSU", "nsu"),
    ("SPLIT", "split"),
    ("TRANSAÇÃO PRINCIPAL", "parent_transaction"),
    ("VALOR ORIGINAL", "original_amount"),
]

EXPORT_HEADERS: list[str] = [header for header, _ in EXPORT_COLUMNS]

# Columns without which an export is considered malformed
REQUIRED_COLUMNS: list[str] = [
    "DATA DA TRANSAÇÃO",
    "ID DA TRANSAÇÃO",
    "MODALIDADE",
    "VALOR BRUTO",
    "VALOR LÍQUIDO",
]

# Spellings seen in the wild for the same column
COLUMN_ALIASES: dict[str, list[str]] = {
    "DATA EXPORTACÃO": ["DATA EXPORTACAO", "DATA EXPORTAÇÃO"],
    "CARTÃO": ["CARTAO"],
}

NOT_INFORMED = "NÃO INFORMADO"


def normalize_header(name: str) -> str:
    """Uppercase, trim and collapse internal whitespace of a header name."""
    return " ".join(name.split()).upper()
