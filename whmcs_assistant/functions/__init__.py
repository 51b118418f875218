from whmcs_assistant.functions import check_service_status, create_ticket, get_client_invoices
from whmcs_assistant.functions.registry import FunctionRegistry
from whmcs_assistant.services.whmcs_service import WhmcsService

BILLING_FUNCTIONS = (get_client_invoices, check_service_status, create_ticket)


def register_billing_functions(registry: FunctionRegistry, whmcs: WhmcsService) -> FunctionRegistry:
    for module in BILLING_FUNCTIONS:
        registry.register(module.NAME, lambda module=module: module.create(whmcs))
    return registry
