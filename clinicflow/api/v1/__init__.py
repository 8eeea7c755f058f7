from fastapi import APIRouter
from .patient.patient_routes import router as patient_router
from .patient.prescription_routes import router as prescription_router
from .billing.service_routes import router as service_router
from .billing.bill_routes import router as bill_router
from .dashboard.dashboard import router as dashboard_router

router = APIRouter()


router.include_router(patient_router)
router.include_router(prescription_router)
router.include_router(service_router)
router.include_router(bill_router)
router.include_router(dashboard_router)
