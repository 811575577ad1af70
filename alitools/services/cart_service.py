"""
Cart helpers
"""
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from alitools.models.cart import Cart


async def get_or_create_default_cart(session: AsyncSession, user_id: int) -> Cart:
    """Return the user's default cart, creating it when the user has none."""
    result = await session.execute(
        select(Cart).where(Cart.user_id == user_id, Cart.is_default.is_(True))
    )
    cart = result.scalar_one_or_none()
    if cart is None:
        cart = Cart(user_id=user_id, is_default=True, status="active")
        session.add(cart)
        await session.flush()
    return cart
