# tests/test_rma_consultas.py
from datetime import datetime, timedelta, timezone
import pytest

from core.errors import ForbiddenError, NotFoundError, ValidationError
from core.models.enums import RmaEstado
from modules.rma.services.services_rma_consultas import (
    contar_por_estado,
    listar_rmas,
    listar_rmas_usuario,
    obtener_rma_detalle,
)
from modules.rma.services.services_rma_lifecycle import ItemRma


@pytest.fixture
def varios(seed, nuevo_rma):
    a = nuevo_rma(owner=seed.user_co)
    b = nuevo_rma(owner=seed.user_co2)
    c = nuevo_rma(owner=seed.user_mx, pais_id=seed.mx, productos=[ItemRma(producto_id=seed.p2)])
    return a, b, c


def test_user_lists_only_own_rmas(db, seed, varios):
    a, _, _ = varios
    result = listar_rmas(db, seed.user_co)

    assert [r.id for r in result["rmas"]] == [a.id]


def test_admin_lists_country_rmas(db, seed, varios):
    a, b, c = varios

    ids = {r.id for r in listar_rmas(db, seed.admin_co)["rmas"]}

    assert ids == {a.id, b.id}
    assert c.id not in ids


def test_admin_explicit_foreign_country_returns_empty(db, seed, varios):
    result = listar_rmas(db, seed.admin_co, pais_id=seed.mx)

    assert result["rmas"] == []
    assert result["pagination"]["total"] == 0


def test_superadmin_sees_everything(db, seed, varios):
    assert listar_rmas(db, seed.superadmin)["pagination"]["total"] == 3


def test_admin_without_countries_cannot_list(db, seed, varios):
    with pytest.raises(ForbiddenError):
        listar_rmas(db, seed.admin_sin)


@pytest.mark.parametrize("termino", ["acme", "ANA@ACME", "rojas"])
def test_search_matches_company_and_owner(db, seed, varios, termino):
    a, _, _ = varios
    result = listar_rmas(db, seed.superadmin, search=termino)

    assert [r.id for r in result["rmas"]] == [a.id]


def test_search_by_tracking_code(db, seed, varios, rma_engine):
    _, b, _ = varios
    rma = rma_engine.aprobar(db, seed.admin_co, b.id)

    result = listar_rmas(db, seed.admin_co, search=rma.numero_tracking.lower())

    assert [r.id for r in result["rmas"]] == [b.id]


def test_status_filter_and_validation(db, seed, varios, rma_engine):
    a, _, _ = varios
    rma_engine.aprobar(db, seed.admin_co, a.id)

    result = listar_rmas(db, seed.superadmin, status="awaiting_goods")
    assert [r.id for r in result["rmas"]] == [a.id]

    with pytest.raises(ValidationError):
        listar_rmas(db, seed.superadmin, status="PERDIDO")


def test_pagination_block(db, seed, nuevo_rma):
    for _ in range(5):
        nuevo_rma(owner=seed.user_co)

    page1 = listar_rmas(db, seed.user_co, page=1, limit=2)
    page3 = listar_rmas(db, seed.user_co, page=3, limit=2)

    assert page1["pagination"] == {
        "page": 1,
        "limit": 2,
        "total": 5,
        "total_pages": 3,
        "has_next": True,
        "has_prev": False,
    }
    assert len(page3["rmas"]) == 1
    assert page3["pagination"]["has_next"] is False
    assert page3["pagination"]["has_prev"] is True


def test_user_rmas_listing_filters_status(db, seed, varios, rma_engine):
    a, _, _ = varios
    extra = rma_engine.submit(db, seed.user_co, pais_id=seed.co, productos=[ItemRma(producto_id=seed.p3)])
    rma_engine.rechazar(db, seed.admin_co, extra.id, "duplicado")

    todos = listar_rmas_usuario(db, seed.user_co)
    rechazados = listar_rmas_usuario(db, seed.user_co, status=RmaEstado.REJECTED.value)

    assert {r.id for r in todos} == {a.id, extra.id}
    assert [r.id for r in rechazados] == [extra.id]


def test_detail_out_of_scope_is_not_found(db, seed, varios):
    a, _, c = varios

    assert obtener_rma_detalle(db, seed.user_co, a.id).id == a.id
    with pytest.raises(NotFoundError):
        obtener_rma_detalle(db, seed.user_co, c.id)
    with pytest.raises(NotFoundError):
        obtener_rma_detalle(db, seed.admin_co, c.id)


def test_count_by_status(db, seed, varios, rma_engine):
    a, _, _ = varios
    rma_engine.aprobar(db, seed.admin_co, a.id)

    counts = contar_por_estado(db, seed.admin_co)

    assert counts["AWAITING_GOODS"] == 1
    assert counts["RMA_SUBMITTED"] == 1
    assert counts["COMPLETE"] == 0


def test_date_filters_normalize_offsets_to_utc(db, seed, varios):
    # los RMAs se crean a las 15:00 UTC
    bogota = timezone(timedelta(hours=-5))
    despues = datetime(2026, 3, 10, 11, 0, tzinfo=bogota)  # 16:00 UTC
    antes = datetime(2026, 3, 10, 9, 0, tzinfo=bogota)  # 14:00 UTC

    assert listar_rmas(db, seed.superadmin, fecha_desde=despues)["pagination"]["total"] == 0
    assert listar_rmas(db, seed.superadmin, fecha_desde=antes)["pagination"]["total"] == 3
    assert listar_rmas_usuario(db, seed.user_co, fecha_hasta=antes) == []
