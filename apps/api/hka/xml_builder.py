from __future__ import annotations

import re
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from lxml import etree
from pydantic import ValidationError

from .errors import InvoicePayloadError
from .models import Emisor, InvoicePayload

ITBMS_RATE = 0.07
DEFAULT_EMISOR_NAME = "EMPRESA EMISORA SA"
DEFAULT_EMISOR_ADDRESS = "CIUDAD DE PANAMA"


def _money(value: float) -> str:
    return f"{value:.2f}"


def _quantity(value: float) -> str:
    # Plain notation with every significant digit: 1500000, 2.1234567, 3.
    return format(Decimal(repr(float(value))).normalize(), "f")


def _sub(parent: etree._Element, tag: str, text: Any = None, **attrs: Any) -> etree._Element:
    el = etree.SubElement(parent, tag, {k: str(v) for k, v in attrs.items()})
    if text is not None:
        el.text = str(text)
    return el


def parse_invoice(payload: Dict[str, Any]) -> InvoicePayload:
    if not isinstance(payload, dict):
        raise InvoicePayloadError("El payload de la factura debe ser un objeto JSON.")
    try:
        return InvoicePayload.model_validate(payload)
    except ValidationError as e:
        fields = sorted({".".join(str(p) for p in err["loc"]) for err in e.errors()})
        raise InvoicePayloadError(f"Factura inválida, revise los campos: {', '.join(fields)}.") from e


def document_number(external_id: str) -> str:
    digits = re.sub(r"\D", "", external_id or "")
    return digits[-10:] or "000000001"


def convert_invoice_to_xml(payload: Dict[str, Any], emisor: Emisor, *, now: Optional[datetime] = None) -> str:
    """Build the rFE fiscal document for a JSON invoice.

    Every line carries the flat 7% ITBMS; totals are rounded to two decimals.
    """
    invoice = parse_invoice(payload)
    issued_at = (now or datetime.now()).replace(microsecond=0)

    root = etree.Element("rFE", dVerForm="1.00")
    _sub(root, "dId", invoice.external_id)

    gen = _sub(root, "gDGen")
    _sub(gen, "iDoc", "01")
    _sub(gen, "dNroDF", document_number(invoice.external_id))
    _sub(gen, "dPtoFacDF", "001")
    _sub(gen, "dFechaEm", issued_at.strftime("%Y-%m-%dT%H:%M:%S"))

    emis = _sub(gen, "gEmis")
    ruc_emi = _sub(emis, "gRucEmi")
    _sub(ruc_emi, "dRuc", emisor.ruc)
    _sub(ruc_emi, "dDV", emisor.dv or "00")
    _sub(emis, "dNombEm", emisor.name or DEFAULT_EMISOR_NAME)
    _sub(emis, "dDirecEm", emisor.address or DEFAULT_EMISOR_ADDRESS)

    rec = _sub(gen, "gDatRec")
    _sub(rec, "iTipoRec", "01")
    ruc_rec = _sub(rec, "gRucRec")
    _sub(ruc_rec, "dRuc", invoice.customer_ruc)
    _sub(ruc_rec, "dDV", "00")
    _sub(rec, "dNombRec", invoice.customer_name)

    subtotal = 0.0
    for index, item in enumerate(invoice.items, start=1):
        line_total = float(item.qty) * float(item.unit_price)
        subtotal += line_total

        g_item = _sub(root, "gItem", dSecItem=index)
        _sub(g_item, "dDescProd", item.desc)
        _sub(g_item, "dCantCodInt", _quantity(item.qty))
        _sub(g_item, "dPrUnit", _money(item.unit_price))
        _sub(g_item, "dPrItem", _money(line_total))
        itbms = _sub(g_item, "gITBMSItem")
        _sub(itbms, "dTasaITBMS", _money(ITBMS_RATE * 100))
        _sub(itbms, "dValITBMS", _money(line_total * ITBMS_RATE))

    total_itbms = subtotal * ITBMS_RATE
    total = subtotal + total_itbms
    tot = _sub(root, "gTot")
    _sub(tot, "dTotNeto", _money(subtotal))
    _sub(tot, "dTotITBMS", _money(total_itbms))
    _sub(tot, "dTotGravado", _money(total))
    _sub(tot, "dVTot", _money(total))

    return etree.tostring(root, xml_declaration=True, encoding="UTF-8", pretty_print=True).decode("utf-8")
