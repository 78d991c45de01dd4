"""
Entity registry: one EntityDescriptor per synced KiotViet collection.

These are data, not algorithm. Column limits follow the upstream
storage schema; everything else rides along in ``raw_json``.
"""
from typing import Dict, List

from retailsync.core.descriptor import ChildCollection, EntityDescriptor
from retailsync.core.sanitize import FieldSpec as F
from retailsync.exceptions import UnknownEntityError
from retailsync.models.entities import (
    Branch,
    Category,
    Customer,
    Invoice,
    InvoiceDelivery,
    InvoiceDetail,
    InvoicePayment,
    Order,
    OrderDelivery,
    OrderDetail,
    OrderPayment,
    PriceBook,
    PriceBookBranch,
    PriceBookCustomerGroup,
    Product,
    ProductInventory,
    ProductPriceBook,
    User,
)

_TIMESTAMPS = (
    F("created_date", "createdDate", "datetime"),
    F("modified_date", "modifiedDate", "datetime"),
)

_PAYMENT_FIELDS = (
    F("kiot_payment_id", "id", "int"),
    F("code", "code", max_length=50),
    F("amount", "amount", "float", default=0),
    F("account_id", "accountId", "int"),
    F("bank_account", "bankAccount", max_length=255),
    F("method", "method", max_length=50),
    F("status", "status", "int", default=0),
    F("status_value", "statusValue", max_length=50),
    F("trans_date", "transDate", "datetime"),
)

_DELIVERY_FIELDS = (
    F("service_type", "serviceType", max_length=50, default="0"),
    F("status", "status", "int", default=1),
    F("status_value", "statusValue", max_length=50),
    F("receiver", "receiver", max_length=255),
    F("contact_number", "contactNumber", max_length=50),
    F("address", "address", max_length=500),
    F("location_id", "locationId", "int"),
    F("location_name", "locationName", max_length=255),
    F("ward_id", "wardId", "int"),
    F("ward_name", "wardName", max_length=255),
    F("weight", "weight", "float"),
    F("length", "length", "float"),
    F("width", "width", "float"),
    F("height", "height", "float"),
    F("partner_delivery_id", "partnerDeliveryId", "int"),
    F("partner_delivery_code", "partnerDelivery.code", max_length=50),
    F("partner_delivery_name", "partnerDelivery.name", max_length=255),
)

ORDERS = EntityDescriptor(
    entity_type="orders",
    endpoint="/orders",
    model=Order,
    fields=(
        F("kiot_id", "id", "int", required=True),
        F("code", "code", max_length=50, default=""),
        F("purchase_date", "purchaseDate", "datetime"),
        F("branch_id", "branchId", "int"),
        F("branch_name", "branchName", max_length=255),
        F("sold_by_id", "soldById", "int"),
        F("sold_by_name", "soldByName", max_length=255),
        F("customer_id", "customerId", "int"),
        F("customer_code", "customerCode", max_length=50),
        F("customer_name", "customerName", max_length=255),
        F("total", "total", "float", default=0),
        F("total_payment", "totalPayment", "float", default=0),
        F("discount", "discount", "float"),
        F("discount_ratio", "discountRatio", "float"),
        F("status", "status", "int"),
        F("status_value", "statusValue", max_length=50),
        F("description", "description", max_length=1000),
        F("using_cod", "usingCod", "bool", default=False),
        F("sale_channel_id", "saleChannelId", "int"),
        F("sale_channel_name", "saleChannelName", max_length=255),
        F("price_book_id", "PriceBookId", "int"),
        F("extra", "Extra", "json"),
    ) + _TIMESTAMPS,
    children=(
        ChildCollection(
            source="orderDetails",
            model=OrderDetail,
            parent_column="order_id",
            fields=(
                F("product_id", "productId", "int"),
                F("product_code", "productCode", max_length=50),
                F("product_name", "productName", max_length=255),
                F("quantity", "quantity", "float", default=0),
                F("price", "price", "float", default=0),
                F("discount", "discount", "float", default=0),
                F("discount_ratio", "discountRatio", "float", default=0),
                F("view_discount", "viewDiscount", "float", default=0),
                F("note", "note", max_length=1000),
            ),
        ),
        ChildCollection(
            source="payments",
            model=OrderPayment,
            parent_column="order_id",
            fields=_PAYMENT_FIELDS,
        ),
        ChildCollection(
            source="orderDelivery",
            model=OrderDelivery,
            parent_column="order_id",
            many=False,
            fields=_DELIVERY_FIELDS,
        ),
    ),
    fetch_params={
        "orderBy": "modifiedDate",
        "orderDirection": "DESC",
        "includePayment": True,
        "includeOrderDelivery": True,
    },
)

INVOICES = EntityDescriptor(
    entity_type="invoices",
    endpoint="/invoices",
    model=Invoice,
    fields=(
        F("kiot_id", "id", "int", required=True),
        F("uuid", "uuid", max_length=50),
        F("code", "code", max_length=50, default=""),
        F("purchase_date", "purchaseDate", "datetime"),
        F("branch_id", "branchId", "int"),
        F("branch_name", "branchName", max_length=255),
        F("sold_by_id", "soldById", "int"),
        F("sold_by_name", "soldByName", max_length=255),
        F("customer_id", "customerId", "int"),
        F("customer_code", "customerCode", max_length=50),
        F("customer_name", "customerName", max_length=255),
        F("order_id", "orderId", "int"),
        F("order_code", "orderCode", max_length=50),
        F("total", "total", "float", default=0),
        F("total_payment", "totalPayment", "float", default=0),
        F("discount", "discount", "float"),
        F("status", "status", "int"),
        F("status_value", "statusValue", max_length=50),
        F("description", "description", max_length=1000),
        F("using_cod", "usingCod", "bool", default=False),
    ) + _TIMESTAMPS,
    children=(
        ChildCollection(
            source="invoiceDetails",
            model=InvoiceDetail,
            parent_column="invoice_id",
            fields=(
                F("product_id", "productId", "int"),
                F("product_code", "productCode", max_length=50),
                F("product_name", "productName", max_length=255),
                F("category_id", "categoryId", "int"),
                F("category_name", "categoryName", max_length=255),
                F("trade_mark_id", "tradeMarkId", "int"),
                F("trade_mark_name", "tradeMarkName", max_length=255),
                F("quantity", "quantity", "float", default=0),
                F("price", "price", "float", default=0),
                F("discount", "discount", "float", default=0),
                F("discount_ratio", "discountRatio", "float", default=0),
                F("use_point", "usePoint", "bool", default=False),
                F("sub_total", "subTotal", "float", default=0),
                F("note", "note", max_length=1000),
                F("return_quantity", "returnQuantity", "float", default=0),
                F("serial_numbers", "serialNumbers", max_length=1000, default=""),
            ),
        ),
        ChildCollection(
            source="payments",
            model=InvoicePayment,
            parent_column="invoice_id",
            fields=_PAYMENT_FIELDS,
        ),
        ChildCollection(
            source="invoiceDelivery",
            model=InvoiceDelivery,
            parent_column="invoice_id",
            many=False,
            fields=_DELIVERY_FIELDS,
        ),
    ),
    fetch_params={
        "orderBy": "modifiedDate",
        "orderDirection": "DESC",
        "includePayment": True,
        "includeInvoiceDelivery": True,
    },
)

CATEGORIES = EntityDescriptor(
    entity_type="categories",
    endpoint="/categories",
    model=Category,
    fields=(
        F("kiot_id", "categoryId", "int", required=True),
        F("parent_id", "parentId", "int"),
        F("category_name", "categoryName", max_length=125, default=""),
        F("retailer_id", "retailerId", "int"),
        F("has_child", "hasChild", "bool", default=False),
    ) + _TIMESTAMPS,
    fetch_params={"hierachicalData": False},
)

PRICE_BOOKS = EntityDescriptor(
    entity_type="price_books",
    endpoint="/pricebooks",
    model=PriceBook,
    fields=(
        F("kiot_id", "id", "int", required=True),
        F("name", "name", max_length=255, default=""),
        F("description", "description", max_length=1000),
        F("start_date", "startDate", "datetime"),
        F("end_date", "endDate", "datetime"),
        F("is_active", "isActive", "bool", default=True),
        F("retailer_id", "retailerId", "int"),
    ) + _TIMESTAMPS,
    children=(
        ChildCollection(
            source="priceBookBranches",
            model=PriceBookBranch,
            parent_column="price_book_id",
            fields=(
                F("branch_id", "branchId", "int"),
                F("branch_name", "branchName", max_length=255),
            ),
        ),
        ChildCollection(
            source="priceBookCustomerGroups",
            model=PriceBookCustomerGroup,
            parent_column="price_book_id",
            fields=(
                F("customer_group_id", "customerGroupId", "int"),
                F("customer_group_name", "customerGroupName", max_length=255),
            ),
        ),
    ),
    fetch_params={"includePriceBookBranch": True, "includePriceBookCustomerGroups": True},
    supports_modified_filter=False,
)

USERS = EntityDescriptor(
    entity_type="users",
    endpoint="/users",
    model=User,
    fields=(
        F("kiot_id", "id", "int", required=True),
        F("user_name", "userName", max_length=100, default=""),
        F("given_name", "givenName", max_length=255, default=""),
        F("address", "address", max_length=500),
        F("mobile_phone", "mobilePhone", max_length=50),
        F("email", "email", max_length=100),
        F("description", "description", max_length=1000),
        F("retailer_id", "retailerId", "int"),
        F("birth_date", "birthDate", "datetime"),
    ) + _TIMESTAMPS,
)

BRANCHES = EntityDescriptor(
    entity_type="branches",
    endpoint="/branches",
    model=Branch,
    fields=(
        F("kiot_id", "id", "int", required=True),
        F("branch_name", "branchName", max_length=255, default=""),
        F("branch_code", "branchCode", max_length=50),
        F("contact_number", "contactNumber", max_length=50),
        F("retailer_id", "retailerId", "int"),
        F("email", "email", max_length=100),
        F("address", "address", max_length=500),
    ) + _TIMESTAMPS,
)

CUSTOMERS = EntityDescriptor(
    entity_type="customers",
    endpoint="/customers",
    model=Customer,
    fields=(
        F("kiot_id", "id", "int", required=True),
        F("code", "code", max_length=50, default=""),
        F("name", "name", max_length=255, default=""),
        F("contact_number", "contactNumber", max_length=50),
        F("email", "email", max_length=100),
        F("address", "address", max_length=500),
        F("gender", "gender", "bool", default=None),
        F("birth_date", "birthDate", "datetime"),
        F("location_name", "locationName", max_length=100),
        F("ward_name", "wardName", max_length=100),
        F("organization", "organization", max_length=255),
        F("tax_code", "taxCode", max_length=50),
        F("comments", "comments", max_length=1000),
        F("debt", "debt", "float", default=0),
        F("reward_point", "rewardPoint", "float", default=0),
        F("retailer_id", "retailerId", "int"),
        F("branch_id", "branchId", "int"),
    ) + _TIMESTAMPS,
    fetch_params={"includeTotal": True, "orderBy": "modifiedDate", "orderDirection": "DESC"},
)

PRODUCTS = EntityDescriptor(
    entity_type="products",
    endpoint="/products",
    model=Product,
    fields=(
        F("kiot_id", "id", "int", required=True),
        F("code", "code", max_length=50, default=""),
        F("bar_code", "barCode", max_length=50, default=""),
        F("name", "name", max_length=255, default=""),
        F("full_name", "fullName", max_length=500),
        F("category_id", "categoryId", "int"),
        F("category_name", "categoryName", max_length=255),
        F("trade_mark_id", "tradeMarkId", "int"),
        F("trade_mark_name", "tradeMarkName", max_length=255),
        F("allows_sale", "allowsSale", "bool", default=True),
        F("product_type", "type", "int", default=2),
        F("has_variants", "hasVariants", "bool", default=False),
        F("base_price", "basePrice", "float"),
        F("unit", "unit", max_length=50),
        F("conversion_value", "conversionValue", "float", default=1),
        F("weight", "weight", "float", default=0),
        F("description", "description", max_length=2000, default=""),
        F("is_active", "isActive", "bool", default=True),
        F("order_template", "orderTemplate", max_length=255, default=""),
        F("is_lot_serial_control", "isLotSerialControl", "bool", default=False),
        F("is_batch_expire_control", "isBatchExpireControl", "bool", default=False),
        F("retailer_id", "retailerId", "int"),
    ) + _TIMESTAMPS,
    children=(
        ChildCollection(
            source="inventories",
            model=ProductInventory,
            parent_column="product_id",
            fields=(
                F("branch_id", "branchId", "int"),
                F("branch_name", "branchName", max_length=255),
                F("cost", "cost", "float", default=0),
                F("on_hand", "onHand", "float", default=0),
                F("reserved", "reserved", "float", default=0),
                F("actual_reserved", "actualReserved", "float", default=0),
                F("min_quantity", "minQuantity", "float", default=0),
                F("max_quantity", "maxQuantity", "float", default=0),
                F("is_active", "isActive", "bool", default=True),
                F("on_order", "onOrder", "float", default=0),
            ),
        ),
        ChildCollection(
            source="priceBooks",
            model=ProductPriceBook,
            parent_column="product_id",
            fields=(
                F("price_book_id", "priceBookId", "int"),
                F("price_book_name", "priceBookName", max_length=255),
                F("price", "price", "float", default=0),
                F("is_active", "isActive", "bool", default=True),
                F("start_date", "startDate", "datetime"),
                F("end_date", "endDate", "datetime"),
            ),
        ),
    ),
    fetch_params={
        "orderBy": "modifiedDate",
        "orderDirection": "DESC",
        "includeInventory": True,
        "includePricebook": True,
    },
)

REGISTRY: Dict[str, EntityDescriptor] = {
    d.entity_type: d
    for d in (ORDERS, INVOICES, PRODUCTS, CATEGORIES, PRICE_BOOKS, USERS, BRANCHES, CUSTOMERS)
}


def get_descriptor(entity_type: str) -> EntityDescriptor:
    try:
        return REGISTRY[entity_type]
    except KeyError:
        raise UnknownEntityError(entity_type) from None


def entity_types() -> List[str]:
    return list(REGISTRY)
