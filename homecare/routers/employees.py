from datetime import date

from fastapi import APIRouter, HTTPException, Response, status

from homecare.database import get_db
from homecare.log import get_logger
from homecare.models import (
    Employee,
    EmployeeCreate,
    EmployeeUpdate,
    Qualifications,
    apply_update,
)

router = APIRouter(prefix="/api/employees", tags=["employees"])
logger = get_logger(__name__)


def _get_employee_or_404(employee_id: int) -> Employee:
    employee = get_db().employees.get(employee_id)
    if employee is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Employee {employee_id} not found",
        )
    return employee


@router.get("")
async def list_employees() -> list[Employee]:
    return get_db().employees.all()


@router.get("/available")
async def list_available_employees(day: date) -> list[Employee]:
    """Active employees who work on ``day`` and are not on vacation."""
    return get_db().get_available_employees(day)


@router.get("/{employee_id}")
async def get_employee(employee_id: int) -> Employee:
    return _get_employee_or_404(employee_id)


@router.get("/{employee_id}/qualifications")
async def get_employee_qualifications(employee_id: int) -> Qualifications:
    return _get_employee_or_404(employee_id).qualifications


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_employee(payload: EmployeeCreate) -> Employee:
    db = get_db()
    employee = Employee(id=db.employees.next_id(), **payload.model_dump())
    db.employees.put(employee.id, employee)
    logger.info("employee_created", employee_id=employee.id, role=employee.role)
    return employee


@router.patch("/{employee_id}")
async def update_employee(employee_id: int, payload: EmployeeUpdate) -> Employee:
    db = get_db()
    employee = apply_update(_get_employee_or_404(employee_id), payload)
    db.employees.put(employee_id, employee)
    return employee


@router.delete("/{employee_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_employee(employee_id: int) -> Response:
    db = get_db()
    _get_employee_or_404(employee_id)
    tour_ids = [t.id for t in db.tours.all() if t.employee_id == employee_id]
    shift_ids = [s.id for s in db.shifts.all() if s.employee_id == employee_id]
    if tour_ids or shift_ids:
        logger.warning(
            "employee_deleted_with_assignments",
            employee_id=employee_id,
            tour_ids=tour_ids,
            shift_ids=shift_ids,
        )
    db.employees.delete(employee_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
