import uuid

from fastapi import APIRouter, Depends, HTTPException, Response, status
from fastapi.responses import HTMLResponse
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from survey360.core.audit import log_event
from survey360.core.logger import get_logger
from survey360.core.rbac import VIEW_REPORTS, require_tenant_access
from survey360.core.reporting import build_report_context, render_pdf, replace_placeholders
from survey360.core.tenancy import get_current_tenant, get_scoped_by_raw_id_or_404, get_scoped_or_404
from survey360.db.session import get_db
from survey360.models.report_template import ReportTemplate
from survey360.models.subject import Subject
from survey360.models.survey import Survey
from survey360.models.tenant import Tenant
from survey360.models.user import User
from survey360.schemas.report import (
    ReportRenderRequest,
    ReportTemplateCreate,
    ReportTemplateOut,
    ReportTemplateUpdate,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/{tenant_slug}/api/reports", tags=["reports"])


def template_to_out(t: ReportTemplate) -> ReportTemplateOut:
    return ReportTemplateOut(
        id=str(t.id),
        name=t.name,
        description=t.description,
        body=t.body,
        is_active=t.is_active,
        created_at=t.created_at,
        updated_at=t.updated_at,
    )


@router.post("/templates", response_model=ReportTemplateOut, status_code=status.HTTP_201_CREATED)
def create_template(
    payload: ReportTemplateCreate,
    tenant: Tenant = Depends(get_current_tenant),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_tenant_access(permission=VIEW_REPORTS)),
):
    t = ReportTemplate(
        tenant_id=tenant.id,
        name=payload.name,
        description=payload.description,
        body=payload.body,
        is_active=True,
    )
    db.add(t)
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="Report template name already exists")

    log_event(
        db=db,
        actor=current_user,
        tenant=tenant,
        action="REPORT_TEMPLATE_CREATED",
        entity_type="report_template",
        entity_id=t.id,
        metadata={"name": t.name},
    )
    db.commit()
    db.refresh(t)
    return template_to_out(t)


@router.get("/templates", response_model=list[ReportTemplateOut])
def list_templates(
    tenant: Tenant = Depends(get_current_tenant),
    db: Session = Depends(get_db),
    _: User = Depends(require_tenant_access(permission=VIEW_REPORTS)),
):
    rows = (
        db.query(ReportTemplate)
        .filter(ReportTemplate.tenant_id == tenant.id, ReportTemplate.is_active.is_(True))
        .order_by(ReportTemplate.name.asc())
        .all()
    )
    return [template_to_out(t) for t in rows]


@router.get("/templates/{template_id}", response_model=ReportTemplateOut)
def get_template(
    template_id: uuid.UUID,
    tenant: Tenant = Depends(get_current_tenant),
    db: Session = Depends(get_db),
    _: User = Depends(require_tenant_access(permission=VIEW_REPORTS)),
):
    return template_to_out(get_scoped_or_404(db, ReportTemplate, template_id, tenant, "Report template not found"))


@router.patch("/templates/{template_id}", response_model=ReportTemplateOut)
def update_template(
    template_id: uuid.UUID,
    payload: ReportTemplateUpdate,
    tenant: Tenant = Depends(get_current_tenant),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_tenant_access(permission=VIEW_REPORTS)),
):
    t = get_scoped_or_404(db, ReportTemplate, template_id, tenant, "Report template not found")

    changes = payload.model_dump(exclude_unset=True)
    for field, value in changes.items():
        setattr(t, field, value)
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="Report template name already exists")

    log_event(
        db=db,
        actor=current_user,
        tenant=tenant,
        action="REPORT_TEMPLATE_UPDATED",
        entity_type="report_template",
        entity_id=t.id,
        metadata={"fields": sorted(changes)},
    )
    db.commit()
    db.refresh(t)
    return template_to_out(t)


@router.delete("/templates/{template_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_template(
    template_id: uuid.UUID,
    tenant: Tenant = Depends(get_current_tenant),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_tenant_access(permission=VIEW_REPORTS)),
):
    t = get_scoped_or_404(db, ReportTemplate, template_id, tenant, "Report template not found")
    t.is_active = False

    log_event(
        db=db,
        actor=current_user,
        tenant=tenant,
        action="REPORT_TEMPLATE_DEACTIVATED",
        entity_type="report_template",
        entity_id=t.id,
    )
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/render")
def render_report(
    payload: ReportRenderRequest,
    tenant: Tenant = Depends(get_current_tenant),
    db: Session = Depends(get_db),
    _: User = Depends(require_tenant_access(permission=VIEW_REPORTS)),
):
    """
    Merge report data for one subject and survey into a template.

    Returns text/html, or application/pdf when format is "pdf".
    """
    template = get_scoped_by_raw_id_or_404(db, ReportTemplate, payload.template_id, tenant, "Report template not found")
    if not template.is_active:
        raise HTTPException(status_code=404, detail="Report template not found")
    subject = get_scoped_by_raw_id_or_404(db, Subject, payload.subject_id, tenant, "Subject not found")
    survey = get_scoped_by_raw_id_or_404(db, Survey, payload.survey_id, tenant, "Survey not found")

    context = build_report_context(db, tenant=tenant, subject=subject, survey=survey)
    html_content = replace_placeholders(template.body, context)

    if payload.format == "pdf":
        pdf = render_pdf(html_content)
        filename = f"report-{subject.employee.employee_number}.pdf"
        return Response(
            content=pdf,
            media_type="application/pdf",
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )
    return HTMLResponse(content=html_content)
