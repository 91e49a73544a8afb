from cleanops.models.branch import Branch, BranchType, Staff, StaffRole
from cleanops.models.order import (
    Order,
    OrderStatus,
    OrderStatusHistory,
    RoutingStatus,
    WorkstationStage,
    ReturnMethod,
    ClassificationBasis,
    PaymentStatus,
)
from cleanops.models.classification import ClassificationOverride
from cleanops.models.processing_batch import ProcessingBatch, ProcessingStage, BatchStatus
from cleanops.models.transfer_batch import TransferBatch, TransferBatchStatus
from cleanops.models.reminder import Reminder, ReminderType, ReminderStatus
from cleanops.models.payment import Payment, PaymentMethod
from cleanops.models.document_sequence import DocumentSequence, DocumentType

__all__ = [
    "Branch", "BranchType", "Staff", "StaffRole",
    "Order", "OrderStatus", "OrderStatusHistory", "RoutingStatus", "WorkstationStage",
    "ReturnMethod", "ClassificationBasis", "PaymentStatus",
    "ClassificationOverride",
    "ProcessingBatch", "ProcessingStage", "BatchStatus",
    "TransferBatch", "TransferBatchStatus",
    "Reminder", "ReminderType", "ReminderStatus",
    "Payment", "PaymentMethod",
    "DocumentSequence", "DocumentType",
]
