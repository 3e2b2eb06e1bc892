# test_imports.py
import sys
print("Python path:", sys.path)

try:
    import service_billing.core.orchestrator
    print("✅ service_billing imported successfully")
    print("Module location:", service_billing.core.orchestrator.__file__)
except ImportError as e:
    print("❌ Failed to import service_billing:", e)

try:
    from service_billing.core.billing import BillingReconciliationEngine
    print("✅ BillingReconciliationEngine imported successfully")
except ImportError as e:
    print("❌ Failed to import BillingReconciliationEngine:", e)
