# tests/test_catalogo.py
import pytest

from core.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from core.models import Marca, Modelo, Producto
from core.services.services_catalogo import (
    actualizar_marca,
    actualizar_modelo,
    actualizar_producto,
    crear_marca,
    crear_modelo,
    crear_producto,
    eliminar_marca,
    eliminar_modelo,
    eliminar_producto,
    listar_marcas,
    listar_modelos,
)
from core.services.services_paises import actualizar_pais, obtener_pais


# ============================
#   MARCAS
# ============================

def test_superadmin_creates_brand_with_countries(db, seed):
    marca = crear_marca(db, seed.superadmin, "  Cambium ", [seed.co, seed.cl, seed.co])

    assert marca.nombre == "Cambium"
    assert {p.id for p in marca.paises} == {seed.co, seed.cl}
    assert "Cambium" in [m.nombre for m in listar_marcas(db, seed.admin_co)]


def test_brand_name_is_unique_case_insensitive(db, seed):
    with pytest.raises(ConflictError):
        crear_marca(db, seed.superadmin, "UBIQUITI", [seed.co])


def test_brand_with_unknown_country_is_refused(db, seed):
    with pytest.raises(NotFoundError, match="países"):
        crear_marca(db, seed.superadmin, "Cambium", [seed.co, 9999])

    assert db.query(Marca).filter(Marca.nombre == "Cambium").count() == 0


def test_brand_changes_require_superadmin(db, seed):
    with pytest.raises(ForbiddenError):
        crear_marca(db, seed.admin_co, "Cambium", [seed.co])
    with pytest.raises(ForbiddenError):
        actualizar_marca(db, seed.admin_co, seed.marca, nombre="Otra")
    with pytest.raises(ForbiddenError):
        eliminar_marca(db, seed.user_co, seed.marca)


def test_update_brand_replaces_countries_and_keeps_name(db, seed):
    marca = actualizar_marca(db, seed.superadmin, seed.marca, pais_ids=[seed.cl])

    assert marca.nombre == "Ubiquiti"
    assert [p.id for p in marca.paises] == [seed.cl]
    assert listar_marcas(db, seed.admin_co) == []


def test_rename_brand_to_existing_name_conflicts(db, seed):
    with pytest.raises(ConflictError):
        actualizar_marca(db, seed.superadmin, seed.marca, nombre="mikrotik")


def test_delete_brand_with_products_is_refused(db, seed):
    with pytest.raises(ConflictError, match="productos asociados"):
        eliminar_marca(db, seed.superadmin, seed.marca)


def test_delete_brand_without_products_drops_its_models(db, seed):
    marca = crear_marca(db, seed.superadmin, "Cambium", [seed.co])
    crear_modelo(db, seed.admin_co, marca.id, "ePMP")

    eliminar_marca(db, seed.superadmin, marca.id)

    assert db.get(Marca, marca.id) is None
    assert db.query(Modelo).count() == 0
    with pytest.raises(NotFoundError):
        eliminar_marca(db, seed.superadmin, marca.id)


# ============================
#   PRODUCTOS
# ============================

def test_create_product_for_brand_and_countries(db, seed):
    producto = crear_producto(db, seed.superadmin, "Bridge P4", seed.marca, [seed.mx])

    assert producto.marca.nombre == "Ubiquiti"
    assert [p.id for p in producto.paises] == [seed.mx]


def test_product_name_unique_per_brand(db, seed):
    with pytest.raises(ConflictError, match="para esta marca"):
        crear_producto(db, seed.superadmin, "router p1", seed.marca, [seed.co])

    otra = db.query(Marca).filter(Marca.nombre == "Mikrotik").one()
    producto = crear_producto(db, seed.superadmin, "Router P1", otra.id, [seed.mx])
    assert producto.marca_id == otra.id


def test_product_with_unknown_brand_is_invalid(db, seed):
    with pytest.raises(ValidationError, match="marca"):
        crear_producto(db, seed.superadmin, "Bridge P4", 9999, [seed.co])


def test_product_changes_require_superadmin(db, seed):
    with pytest.raises(ForbiddenError):
        crear_producto(db, seed.admin_co, "Bridge P4", seed.marca, [seed.co])
    with pytest.raises(ForbiddenError):
        actualizar_producto(db, seed.admin_mx, seed.p2, nombre="X")


def test_update_product_moves_brand_and_countries(db, seed):
    otra = db.query(Marca).filter(Marca.nombre == "Mikrotik").one()

    producto = actualizar_producto(db, seed.superadmin, seed.p3, marca_id=otra.id, pais_ids=[seed.mx])

    assert producto.nombre == "Antena P3"
    assert producto.marca_id == otra.id
    assert [p.id for p in producto.paises] == [seed.mx]


def test_rename_product_to_sibling_name_conflicts(db, seed):
    with pytest.raises(ConflictError):
        actualizar_producto(db, seed.superadmin, seed.p3, nombre="Router P1")


def test_delete_product_with_rmas_is_refused(db, seed, nuevo_rma):
    nuevo_rma()

    with pytest.raises(ConflictError, match="RMAs asociados"):
        eliminar_producto(db, seed.superadmin, seed.p1)


def test_delete_unused_product(db, seed):
    eliminar_producto(db, seed.superadmin, seed.p3)

    assert db.get(Producto, seed.p3) is None
    with pytest.raises(NotFoundError):
        eliminar_producto(db, seed.superadmin, seed.p3)


# ============================
#   MODELOS
# ============================

def test_admin_manages_models_of_a_brand(db, seed):
    modelo = crear_modelo(db, seed.admin_co, seed.marca, " UAP-AC ")
    assert modelo.nombre == "UAP-AC"

    modelo = actualizar_modelo(db, seed.admin_co, modelo.id, nombre="UAP-AC-PRO")
    assert [m.nombre for m in listar_modelos(db, marca_id=seed.marca)] == ["UAP-AC-PRO"]

    eliminar_modelo(db, seed.superadmin, modelo.id)
    assert listar_modelos(db, marca_id=seed.marca) == []


def test_model_name_unique_per_brand(db, seed):
    crear_modelo(db, seed.admin_co, seed.marca, "LiteBeam")

    with pytest.raises(ConflictError, match="para esta marca"):
        crear_modelo(db, seed.admin_mx, seed.marca, "litebeam")

    otra = db.query(Marca).filter(Marca.nombre == "Mikrotik").one()
    assert crear_modelo(db, seed.admin_mx, otra.id, "LiteBeam").marca_id == otra.id


def test_model_requires_existing_brand_and_staff(db, seed):
    with pytest.raises(ValidationError, match="marca"):
        crear_modelo(db, seed.admin_co, 9999, "X")
    with pytest.raises(ForbiddenError):
        crear_modelo(db, seed.user_co, seed.marca, "X")
    with pytest.raises(NotFoundError):
        eliminar_modelo(db, seed.admin_co, 9999)


def test_list_models_filters_by_search(db, seed):
    crear_modelo(db, seed.admin_co, seed.marca, "NanoStation")
    crear_modelo(db, seed.admin_co, seed.marca, "PowerBeam")

    assert [m.nombre for m in listar_modelos(db, search="nano")] == ["NanoStation"]


# ============================
#   PAÍSES
# ============================

def test_get_country(db, seed):
    assert obtener_pais(db, seed.co).nombre == "Colombia"
    with pytest.raises(NotFoundError):
        obtener_pais(db, 9999)


def test_rename_country(db, seed):
    assert actualizar_pais(db, seed.cl, " Chile Continental ").nombre == "Chile Continental"
    assert actualizar_pais(db, seed.cl, "Chile Continental").nombre == "Chile Continental"


def test_rename_country_to_existing_name_conflicts(db, seed):
    with pytest.raises(ConflictError, match="otro país"):
        actualizar_pais(db, seed.cl, "colombia")
    with pytest.raises(ValidationError):
        actualizar_pais(db, seed.cl, "  ")
