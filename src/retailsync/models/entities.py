"""
Entity tables mirrored from KiotViet.

Each table keeps a surrogate ``id``, the upstream key in a unique
``kiot_id`` column, the structured columns we query on, and the full
upstream payload in ``raw_json`` so nothing the columns omit is lost.
Child tables are replaced wholesale on every parent write.
"""
from datetime import datetime
from typing import List, Optional

from sqlmodel import Field, Relationship, SQLModel


class Order(SQLModel, table=True):
    __tablename__ = "orders"

    id: Optional[int] = Field(default=None, primary_key=True)
    kiot_id: int = Field(unique=True, index=True)
    code: str = Field(index=True, max_length=50)
    purchase_date: Optional[datetime] = None

    branch_id: Optional[int] = Field(default=None, index=True)
    branch_name: Optional[str] = None
    sold_by_id: Optional[int] = None
    sold_by_name: Optional[str] = None
    customer_id: Optional[int] = None
    customer_code: Optional[str] = None
    customer_name: Optional[str] = None

    total: float = 0
    total_payment: float = 0
    discount: Optional[float] = None
    discount_ratio: Optional[float] = None

    status: Optional[int] = None  # 1 draft, 2 confirmed, 3 completed, 4 cancelled
    status_value: Optional[str] = None
    description: Optional[str] = None
    using_cod: bool = False
    sale_channel_id: Optional[int] = None
    sale_channel_name: Optional[str] = None
    price_book_id: Optional[int] = None
    extra: Optional[str] = None

    created_date: Optional[datetime] = None
    modified_date: Optional[datetime] = None
    raw_json: Optional[str] = None
    synced_at: datetime = Field(default_factory=datetime.utcnow)

    details: List["OrderDetail"] = Relationship(back_populates="order")
    payments: List["OrderPayment"] = Relationship(back_populates="order")


class OrderDetail(SQLModel, table=True):
    """One line item of an order."""

    __tablename__ = "order_details"

    id: Optional[int] = Field(default=None, primary_key=True)
    order_id: int = Field(foreign_key="orders.id", index=True)
    product_id: Optional[int] = None
    product_code: Optional[str] = None
    product_name: Optional[str] = None
    quantity: float = 0
    price: float = 0
    discount: float = 0
    discount_ratio: float = 0
    view_discount: float = 0
    note: Optional[str] = None

    order: Optional[Order] = Relationship(back_populates="details")


class OrderPayment(SQLModel, table=True):
    __tablename__ = "order_payments"

    id: Optional[int] = Field(default=None, primary_key=True)
    order_id: int = Field(foreign_key="orders.id", index=True)
    kiot_payment_id: Optional[int] = None
    code: Optional[str] = None
    amount: float = 0
    account_id: Optional[int] = None
    bank_account: Optional[str] = None
    method: Optional[str] = None
    status: Optional[int] = None
    status_value: Optional[str] = None
    trans_date: Optional[datetime] = None

    order: Optional[Order] = Relationship(back_populates="payments")


class OrderDelivery(SQLModel, table=True):
    """At most one per order."""

    __tablename__ = "order_delivery"

    id: Optional[int] = Field(default=None, primary_key=True)
    order_id: int = Field(foreign_key="orders.id", index=True)
    service_type: Optional[str] = None
    status: Optional[int] = None
    status_value: Optional[str] = None
    receiver: Optional[str] = None
    contact_number: Optional[str] = None
    address: Optional[str] = None
    location_id: Optional[int] = None
    location_name: Optional[str] = None
    ward_id: Optional[int] = None
    ward_name: Optional[str] = None
    weight: Optional[float] = None
    length: Optional[float] = None
    width: Optional[float] = None
    height: Optional[float] = None
    partner_delivery_id: Optional[int] = None
    partner_delivery_code: Optional[str] = None
    partner_delivery_name: Optional[str] = None


class Invoice(SQLModel, table=True):
    """A completed sale; may reference the order it was created from."""

    __tablename__ = "invoices"

    id: Optional[int] = Field(default=None, primary_key=True)
    kiot_id: int = Field(unique=True, index=True)
    uuid: Optional[str] = None
    code: str = Field(index=True, max_length=50)
    purchase_date: Optional[datetime] = Field(default=None, index=True)

    branch_id: Optional[int] = Field(default=None, index=True)
    branch_name: Optional[str] = None
    sold_by_id: Optional[int] = None
    sold_by_name: Optional[str] = None
    customer_id: Optional[int] = None
    customer_code: Optional[str] = None
    customer_name: Optional[str] = None
    order_id: Optional[int] = None
    order_code: Optional[str] = None

    total: float = 0
    total_payment: float = 0
    discount: Optional[float] = None

    status: Optional[int] = None  # 1 completed, 2 cancelled, 3 processing
    status_value: Optional[str] = None
    description: Optional[str] = None
    using_cod: bool = False

    created_date: Optional[datetime] = None
    modified_date: Optional[datetime] = None
    raw_json: Optional[str] = None
    synced_at: datetime = Field(default_factory=datetime.utcnow)

    details: List["InvoiceDetail"] = Relationship(back_populates="invoice")


class InvoiceDetail(SQLModel, table=True):
    __tablename__ = "invoice_details"

    id: Optional[int] = Field(default=None, primary_key=True)
    invoice_id: int = Field(foreign_key="invoices.id", index=True)
    product_id: Optional[int] = Field(default=None, index=True)
    product_code: Optional[str] = None
    product_name: Optional[str] = None
    category_id: Optional[int] = None
    category_name: Optional[str] = None
    trade_mark_id: Optional[int] = None
    trade_mark_name: Optional[str] = None
    quantity: float = 0
    price: float = 0
    discount: float = 0
    discount_ratio: float = 0
    use_point: bool = False
    sub_total: float = 0
    note: Optional[str] = None
    return_quantity: float = 0
    serial_numbers: Optional[str] = None

    invoice: Optional[Invoice] = Relationship(back_populates="details")


class InvoicePayment(SQLModel, table=True):
    __tablename__ = "invoice_payments"

    id: Optional[int] = Field(default=None, primary_key=True)
    invoice_id: int = Field(foreign_key="invoices.id", index=True)
    kiot_payment_id: Optional[int] = None
    code: Optional[str] = None
    amount: float = 0
    account_id: Optional[int] = None
    bank_account: Optional[str] = None
    method: Optional[str] = None
    status: Optional[int] = None
    status_value: Optional[str] = None
    trans_date: Optional[datetime] = None


class InvoiceDelivery(SQLModel, table=True):
    __tablename__ = "invoice_delivery"

    id: Optional[int] = Field(default=None, primary_key=True)
    invoice_id: int = Field(foreign_key="invoices.id", index=True)
    service_type: Optional[str] = None
    status: Optional[int] = None
    status_value: Optional[str] = None
    receiver: Optional[str] = None
    contact_number: Optional[str] = None
    address: Optional[str] = None
    location_id: Optional[int] = None
    location_name: Optional[str] = None
    ward_id: Optional[int] = None
    ward_name: Optional[str] = None
    weight: Optional[float] = None
    length: Optional[float] = None
    width: Optional[float] = None
    height: Optional[float] = None
    partner_delivery_id: Optional[int] = None
    partner_delivery_code: Optional[str] = None
    partner_delivery_name: Optional[str] = None


class Category(SQLModel, table=True):
    __tablename__ = "categories"

    id: Optional[int] = Field(default=None, primary_key=True)
    kiot_id: int = Field(unique=True, index=True)
    parent_id: Optional[int] = Field(default=None, index=True)
    category_name: str = Field(max_length=125)
    retailer_id: Optional[int] = None
    has_child: bool = False
    created_date: Optional[datetime] = None
    modified_date: Optional[datetime] = None
    raw_json: Optional[str] = None
    synced_at: datetime = Field(default_factory=datetime.utcnow)


class PriceBook(SQLModel, table=True):
    __tablename__ = "price_books"

    id: Optional[int] = Field(default=None, primary_key=True)
    kiot_id: int = Field(unique=True, index=True)
    name: str = Field(max_length=255)
    description: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    is_active: bool = True
    retailer_id: Optional[int] = None
    created_date: Optional[datetime] = None
    modified_date: Optional[datetime] = None
    raw_json: Optional[str] = None
    synced_at: datetime = Field(default_factory=datetime.utcnow)


class PriceBookBranch(SQLModel, table=True):
    """Branches a price book applies to."""

    __tablename__ = "price_book_branches"

    id: Optional[int] = Field(default=None, primary_key=True)
    price_book_id: int = Field(foreign_key="price_books.id", index=True)
    branch_id: Optional[int] = None
    branch_name: Optional[str] = None


class PriceBookCustomerGroup(SQLModel, table=True):
    __tablename__ = "price_book_customer_groups"

    id: Optional[int] = Field(default=None, primary_key=True)
    price_book_id: int = Field(foreign_key="price_books.id", index=True)
    customer_group_id: Optional[int] = None
    customer_group_name: Optional[str] = None


class User(SQLModel, table=True):
    __tablename__ = "users"

    id: Optional[int] = Field(default=None, primary_key=True)
    kiot_id: int = Field(unique=True, index=True)
    user_name: str = Field(max_length=100)
    given_name: str = Field(max_length=255)
    address: Optional[str] = None
    mobile_phone: Optional[str] = None
    email: Optional[str] = None
    description: Optional[str] = None
    retailer_id: Optional[int] = None
    birth_date: Optional[datetime] = None
    created_date: Optional[datetime] = None
    modified_date: Optional[datetime] = None
    raw_json: Optional[str] = None
    synced_at: datetime = Field(default_factory=datetime.utcnow)


class Branch(SQLModel, table=True):
    __tablename__ = "branches"

    id: Optional[int] = Field(default=None, primary_key=True)
    kiot_id: int = Field(unique=True, index=True)
    branch_name: str = Field(max_length=255)
    branch_code: Optional[str] = None
    contact_number: Optional[str] = None
    retailer_id: Optional[int] = None
    email: Optional[str] = None
    address: Optional[str] = None
    created_date: Optional[datetime] = None
    modified_date: Optional[datetime] = None
    raw_json: Optional[str] = None
    synced_at: datetime = Field(default_factory=datetime.utcnow)


class Customer(SQLModel, table=True):
    __tablename__ = "customers"

    id: Optional[int] = Field(default=None, primary_key=True)
    kiot_id: int = Field(unique=True, index=True)
    code: str = Field(max_length=50, index=True)
    name: str = Field(max_length=255)
    contact_number: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    gender: Optional[bool] = None
    birth_date: Optional[datetime] = None
    location_name: Optional[str] = None
    ward_name: Optional[str] = None
    organization: Optional[str] = None
    tax_code: Optional[str] = None
    comments: Optional[str] = None
    debt: float = 0
    reward_point: float = 0
    retailer_id: Optional[int] = None
    branch_id: Optional[int] = None
    created_date: Optional[datetime] = None
    modified_date: Optional[datetime] = None
    raw_json: Optional[str] = None
    synced_at: datetime = Field(default_factory=datetime.utcnow)


class Product(SQLModel, table=True):
    __tablename__ = "products"

    id: Optional[int] = Field(default=None, primary_key=True)
    kiot_id: int = Field(unique=True, index=True)
    code: str = Field(index=True, max_length=50)
    bar_code: Optional[str] = None
    name: str = Field(max_length=255)
    full_name: Optional[str] = None
    category_id: Optional[int] = Field(default=None, index=True)
    category_name: Optional[str] = None
    trade_mark_id: Optional[int] = None
    trade_mark_name: Optional[str] = None
    allows_sale: bool = True
    product_type: Optional[int] = None  # 1 combo, 2 regular, 3 service
    has_variants: bool = False
    base_price: Optional[float] = None
    unit: Optional[str] = None
    conversion_value: float = 1
    weight: float = 0
    description: Optional[str] = None
    is_active: bool = True
    order_template: Optional[str] = None
    is_lot_serial_control: bool = False
    is_batch_expire_control: bool = False
    retailer_id: Optional[int] = None
    created_date: Optional[datetime] = None
    modified_date: Optional[datetime] = None
    raw_json: Optional[str] = None
    synced_at: datetime = Field(default_factory=datetime.utcnow)

    inventories: List["ProductInventory"] = Relationship(back_populates="product")


class ProductInventory(SQLModel, table=True):
    """Stock of one product at one branch."""

    __tablename__ = "product_inventories"

    id: Optional[int] = Field(default=None, primary_key=True)
    product_id: int = Field(foreign_key="products.id", index=True)
    branch_id: Optional[int] = Field(default=None, index=True)
    branch_name: Optional[str] = None
    cost: float = 0
    on_hand: float = 0
    reserved: float = 0
    actual_reserved: float = 0
    min_quantity: float = 0
    max_quantity: float = 0
    is_active: bool = True
    on_order: float = 0

    product: Optional[Product] = Relationship(back_populates="inventories")


class ProductPriceBook(SQLModel, table=True):
    __tablename__ = "product_price_books"

    id: Optional[int] = Field(default=None, primary_key=True)
    product_id: int = Field(foreign_key="products.id", index=True)
    price_book_id: Optional[int] = None
    price_book_name: Optional[str] = None
    price: float = 0
    is_active: bool = True
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
