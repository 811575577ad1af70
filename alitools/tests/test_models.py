"""
Model constraint tests
"""
import pytest
import pytest_asyncio
from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload

from alitools.models import (
    User, UserRole, Cart, Product, Customer, Address, Order, OrderItem, OrderStatus, Shipment,
)
from alitools.services.cart_service import get_or_create_default_cart


@pytest_asyncio.fixture()
async def user(db_session):
    user = User(email="buyer@example.com", full_name="Buyer", hashed_password="x", role=UserRole.CUSTOMER)
    db_session.add(user)
    await db_session.commit()
    return user


async def test_default_cart_created_once(db_session, user):
    first = await get_or_create_default_cart(db_session, user.id)
    await db_session.commit()
    second = await get_or_create_default_cart(db_session, user.id)

    assert first.id == second.id
    count = (await db_session.execute(select(func.count(Cart.id)).where(Cart.user_id == user.id))).scalar_one()
    assert count == 1


async def test_one_default_cart_per_user(db_session, user):
    db_session.add(Cart(user_id=user.id, is_default=True))
    await db_session.commit()

    db_session.add(Cart(user_id=user.id, is_default=True))
    with pytest.raises(IntegrityError):
        await db_session.commit()
    await db_session.rollback()


async def test_saved_carts_are_not_limited(db_session, user):
    await get_or_create_default_cart(db_session, user.id)
    db_session.add_all([
        Cart(user_id=user.id, is_default=False, name="Q3 restock"),
        Cart(user_id=user.id, is_default=False, name="Workshop"),
    ])
    await db_session.commit()

    count = (await db_session.execute(select(func.count(Cart.id)))).scalar_one()
    assert count == 3


async def test_product_ean_is_unique(db_session):
    db_session.add_all([
        Product(code="A", name="A", ean="5901234123457"),
        Product(code="B", name="B", ean="5901234123457"),
    ])
    with pytest.raises(IntegrityError):
        await db_session.commit()
    await db_session.rollback()


async def test_order_for_customer(db_session, user):
    customer = Customer(user_id=user.id, company_name="Oficina Lda", tax_id="PT123456789")
    customer.addresses.append(Address(street="Rua A 1", city="Porto", postal_code="4000-001"))
    db_session.add(customer)
    await db_session.flush()

    order = Order(order_number="ORD-0001", customer_id=customer.id, subtotal=100.0, vat_amount=23.0, total_amount=123.0)
    order.items.append(OrderItem(product_code="P001", product_name="Drill", quantity=1, unit_price=100.0, total_price=100.0))
    order.shipments.append(Shipment(carrier="CTT"))
    db_session.add(order)
    await db_session.commit()

    stored = (await db_session.execute(
        select(Order).options(selectinload(Order.items), selectinload(Order.shipments))
        .where(Order.order_number == "ORD-0001")
    )).scalar_one()
    assert stored.status == OrderStatus.PENDING
    assert stored.currency == "EUR"
    assert [item.product_code for item in stored.items] == ["P001"]
    assert stored.shipments[0].status == "pending"
