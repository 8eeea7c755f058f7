from .patient_model import (
    Patient,
    Visit,
    Prescription,
)
from .billing_model import (
    Service,
    Bill,
    BillItem,
)
