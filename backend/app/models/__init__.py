"""SQLAlchemy models."""

from app.models.organization import Organization, OrganizationMember
from app.models.user import User
from app.models.warehouse import Warehouse, WarehouseType
from app.models.product import Product
from app.models.inventory import Inventory
from app.models.patient import EPS, Patient, PatientContract
from app.models.prescription import Prescription, PrescriptionItem, PrescriptionStatus
from app.models.delivery import Delivery, DeliveryItem, DeliveryStatus
from app.models.transfer import Transfer, TransferItem, TransferStatus
from app.models.supplier import Supplier, SupplierScore
from app.models.purchase import PurchaseOrder, PurchaseOrderStatus, PurchaseReceipt, ReceiptItem
from app.models.returns import InventoryReturn, ReturnItem
from app.models.pending_item import PendingItem, PendingStatus
from app.models.quote import Quote, QuoteItem, QuoteRequest, QuoteRequestItem, QuoteRequestStatus
from app.models.audit import AuditLog
from app.models.invima import InvimaDrug

__all__ = [
    "Organization",
    "OrganizationMember",
    "User",
    "Warehouse",
    "WarehouseType",
    "Product",
    "Inventory",
    "EPS",
    "Patient",
    "PatientContract",
    "Prescription",
    "PrescriptionItem",
    "PrescriptionStatus",
    "Delivery",
    "DeliveryItem",
    "DeliveryStatus",
    "Transfer",
    "TransferItem",
    "TransferStatus",
    "Supplier",
    "SupplierScore",
    "PurchaseOrder",
    "PurchaseOrderStatus",
    "PurchaseReceipt",
    "ReceiptItem",
    "InventoryReturn",
    "ReturnItem",
    "PendingItem",
    "PendingStatus",
    "Quote",
    "QuoteItem",
    "QuoteRequest",
    "QuoteRequestItem",
    "QuoteRequestStatus",
    "AuditLog",
    "InvimaDrug",
]
