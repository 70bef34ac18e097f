# backend/routes/cart.py
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, status, Request
from sqlalchemy.orm import Session
from database import get_db
from utils.tokenJWT import get_current_user
from utils.audit import write_log
from models.users import User
from models.product import Product, ProductVariant, SkuOption
from models.cart import Cart, CartItem
from schemas.cart import CartAddItem, CartUpdateItem, CartOut, CartItemOut
from services import catalog
from services.errors import ProductNotFoundError, SkuNotFoundError, InsufficientStockError

router = APIRouter(prefix="/cart", tags=["Cart"])

def _get_cart(db: Session, user_id: int) -> Cart:
    # Retrieve the user's cart or create a new one
    cart = db.query(Cart).filter(Cart.user_id == user_id).first()
    if not cart:
        cart = Cart(user_id=user_id)
        db.add(cart)
        db.commit()
        db.refresh(cart)
    return cart

def empty_cart(db: Session, user_id: int) -> None:
    # Drop every line of the user's cart; the caller commits
    cart = db.query(Cart).filter(Cart.user_id == user_id).first()
    if cart:
        cart.items.clear()

def _resolve_option(db: Session, product: Product, payload: CartAddItem) -> Optional[SkuOption]:
    if payload.sku:
        return catalog.find_sku_in_product(db, product, payload.sku)
    # Pick the size within the requested colour
    return (
        db.query(SkuOption)
        .join(ProductVariant, SkuOption.variant_id == ProductVariant.id)
        .filter(
            ProductVariant.product_id == product.id,
            ProductVariant.color.ilike(payload.color),
            SkuOption.size == payload.size,
        )
        .first()
    )

def _cart_to_out(cart: Cart) -> CartOut:
    items_out = []
    for it in cart.items:
        items_out.append(CartItemOut(
            id=it.id,
            product_id=it.product_id,
            name=it.product.name if it.product else "",
            sku=it.sku,
            size=it.size,
            color=it.color,
            quantity=it.quantity,
            price=it.price,
            line_total=round(it.price * it.quantity, 2),
        ))
    return CartOut(items=items_out, total_price=cart.total_price)

@router.get("", response_model=CartOut)
def get_cart(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    cart = _get_cart(db, current_user.id)
    return _cart_to_out(cart)

@router.post("/add", response_model=CartOut, status_code=status.HTTP_200_OK)
def add_to_cart(
    payload: CartAddItem,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    cart = _get_cart(db, current_user.id)

    product = catalog.find_product_by_id(db, payload.product_id)
    if not product:
        raise ProductNotFoundError("Product not found")

    option = _resolve_option(db, product, payload)
    if not option:
        raise SkuNotFoundError("Selected size/colour is not available")

    item = db.query(CartItem).filter(CartItem.cart_id == cart.id, CartItem.sku == option.sku).first()
    new_qty = payload.quantity + (item.quantity if item else 0)

    # Advisory only: stock is reserved at checkout, not here
    if new_qty > option.stock:
        raise InsufficientStockError(f"Only {option.stock} left for {product.name} ({option.sku})")

    if item:
        item.quantity = new_qty
        item.price = option.price
    else:
        item = CartItem(
            cart_id=cart.id,
            product_id=product.id,
            sku=option.sku,
            size=option.size,
            color=option.variant.color,
            quantity=payload.quantity,
            price=option.price,
        )
        db.add(item)

    db.commit()
    db.refresh(cart)

    out = _cart_to_out(cart)
    write_log(
        db,
        user_id=current_user.id,
        action="CART_ADD",
        resource="cart",
        request=request,
        meta={"product_id": product.id, "sku": option.sku, "quantity": payload.quantity, "total": out.total_price},
    )
    return out

@router.put("/items/{item_id}", response_model=CartOut)
def update_cart_item(
    item_id: int,
    payload: CartUpdateItem,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    cart = _get_cart(db, current_user.id)

    item = db.query(CartItem).filter(CartItem.id == item_id, CartItem.cart_id == cart.id).first()
    if not item:
        raise HTTPException(status_code=404, detail="Cart item not found")

    option = catalog.find_sku(db, item.sku)
    if option and payload.quantity > option.stock:
        raise InsufficientStockError(f"Only {option.stock} left for {item.sku}")

    item.quantity = payload.quantity
    db.commit()
    db.refresh(cart)
    return _cart_to_out(cart)

@router.delete("/items/{item_id}", response_model=CartOut)
def delete_cart_item(
    item_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    cart = _get_cart(db, current_user.id)

    item = db.query(CartItem).filter(CartItem.id == item_id, CartItem.cart_id == cart.id).first()
    if not item:
        raise HTTPException(status_code=404, detail="Cart item not found")

    db.delete(item)
    db.commit()
    db.refresh(cart)
    return _cart_to_out(cart)

@router.delete("", response_model=CartOut)
def clear_cart(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    empty_cart(db, current_user.id)
    db.commit()
    cart = _get_cart(db, current_user.id)
    return _cart_to_out(cart)
