from tableside.models.table import Table, TableStatus
from tableside.models.temporary_client import TemporaryClient, ClientStatus, OCCUPYING_STATUSES
from tableside.models.comanda import Comanda, ComandaStatus, OrderItem
from tableside.models.service_request import ServiceRequest, ServiceRequestStatus, ServiceRequestType
from tableside.models.waiter import WaiterInteraction, WaiterAction, WaiterRating
