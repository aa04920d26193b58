import pytest

from apps.api.hka.models import DocumentStatus
from apps.api.hka.status import is_accepted, map_vendor_status, vendor_cufe, vendor_message


@pytest.mark.parametrize(
    "estado, expected",
    [
        ("ACEPTADO", DocumentStatus.STAMPED),
        ("aceptado", DocumentStatus.STAMPED),
        ("ANULADO", DocumentStatus.CANCELLED),
        ("Rechazado", DocumentStatus.FAILED),
        ("No  Encontrado", DocumentStatus.NOT_FOUND),
        ("EN PROCESO", DocumentStatus.PROCESSING),
        (None, DocumentStatus.PROCESSING),
    ],
)
def test_map_vendor_status(estado, expected):
    assert map_vendor_status(estado) == expected


def test_is_accepted_reads_soap_and_rest_keys():
    assert is_accepted({"Estado": "ACEPTADO"})
    assert is_accepted({"status": "aceptado"})
    assert not is_accepted({"Estado": "RECHAZADO"})
    assert not is_accepted({})


def test_vendor_message_prefers_error_list():
    result = {"Estado": "RECHAZADO", "Errores": ["RUC receptor inválido", "Total incorrecto"], "Mensaje": "Rechazado"}
    assert vendor_message(result, "fallback") == "RUC receptor inválido, Total incorrecto"
    assert vendor_message({"Mensaje": "Rechazado"}, "fallback") == "Rechazado"
    assert vendor_message({}, "fallback") == "fallback"


def test_vendor_cufe():
    assert vendor_cufe({"CUFE": "FE-1"}) == "FE-1"
    assert vendor_cufe({"uuid": "u-1"}) == "u-1"
    assert vendor_cufe({}) is None
