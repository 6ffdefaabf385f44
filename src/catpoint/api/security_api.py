"""
Security API - 控制面板接口

REST surface over SecurityService:
- 状态查询 (alarm / arming / sensors)
- 布防撤防
- 传感器增删和激活
- 摄像头图像上传 (猫检测)
- 最近事件
"""

import asyncio
from typing import List, Optional

import structlog
from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..domain.enums import AlarmStatus, ArmingStatus, SensorType
from ..domain.errors import CollaboratorFailure, InvalidArgumentError
from ..domain.models import SecurityEvent, Sensor
from ..hardware.cat_classifier import decode_image
from ..services.security_service import SecurityService
from ..services.status_listener import EventLog

logger = structlog.get_logger()

security_router = APIRouter(prefix="/api/security", tags=["security"])


# =============================================================================
# Request/Response Models
# =============================================================================

class ArmingRequest(BaseModel):
    """布防/撤防请求"""
    arming_status: ArmingStatus = Field(..., description="目标布防状态")


class SensorCreateRequest(BaseModel):
    """新增传感器请求"""
    name: str = Field(..., min_length=1, max_length=64)
    sensor_type: SensorType


class ActivationRequest(BaseModel):
    """传感器激活请求"""
    active: bool


class SecurityStatusResponse(BaseModel):
    """系统状态响应"""
    alarm_status: AlarmStatus
    alarm_description: str
    arming_status: ArmingStatus
    arming_description: str
    any_sensor_active: bool
    cat_detected: bool
    sensor_count: int


class ImageResultResponse(BaseModel):
    """图像检测结果"""
    cat_detected: bool
    alarm_status: AlarmStatus


# =============================================================================
# Global State
# =============================================================================

_security_service: Optional[SecurityService] = None
_event_log: Optional[EventLog] = None


def set_security_service(service: Optional[SecurityService], event_log: Optional[EventLog] = None):
    """设置全局 service 实例"""
    global _security_service, _event_log
    _security_service = service
    _event_log = event_log


def get_security_service() -> SecurityService:
    """获取 service 实例"""
    if _security_service is None:
        raise HTTPException(status_code=500, detail="Security service not initialized")
    return _security_service


def _get_sensor_or_404(service: SecurityService, sensor_id: str) -> Sensor:
    sensor = service.get_sensor(sensor_id)
    if sensor is None:
        raise HTTPException(status_code=404, detail=f"Sensor not found: {sensor_id}")
    return sensor


# =============================================================================
# Exception Handlers (registered by create_app)
# =============================================================================

async def invalid_argument_handler(request: Request, exc: InvalidArgumentError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": str(exc)})


async def collaborator_failure_handler(request: Request, exc: CollaboratorFailure) -> JSONResponse:
    logger.error("Collaborator failure", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=502, content={"detail": str(exc)})


# =============================================================================
# API Endpoints
# =============================================================================

@security_router.get("/status", response_model=SecurityStatusResponse)
def get_status():
    """获取系统当前状态"""
    service = get_security_service()
    alarm_status = service.get_alarm_status()
    arming_status = service.get_arming_status()

    return SecurityStatusResponse(
        alarm_status=alarm_status,
        alarm_description=alarm_status.description,
        arming_status=arming_status,
        arming_description=arming_status.description,
        any_sensor_active=service.is_any_sensor_active(),
        cat_detected=service.last_cat_verdict,
        sensor_count=len(service.get_sensors()),
    )


@security_router.post("/arming", response_model=SecurityStatusResponse)
def set_arming(request: ArmingRequest):
    """布防 (ARMED_HOME / ARMED_AWAY) 或撤防 (DISARMED)"""
    service = get_security_service()
    service.set_arming_status(request.arming_status)
    return get_status()


@security_router.get("/sensors", response_model=List[Sensor])
def list_sensors():
    """传感器列表 (按名称排序)"""
    return sorted(get_security_service().get_sensors())


@security_router.post("/sensors", response_model=Sensor, status_code=201)
def add_sensor(request: SensorCreateRequest):
    """新增传感器"""
    service = get_security_service()
    sensor = Sensor(name=request.name, sensor_type=request.sensor_type)
    service.add_sensor(sensor)
    return sensor


@security_router.delete("/sensors/{sensor_id}")
def remove_sensor(sensor_id: str):
    """删除传感器"""
    service = get_security_service()
    sensor = _get_sensor_or_404(service, sensor_id)
    service.remove_sensor(sensor)
    return {"status": "removed", "sensor_id": sensor_id}


@security_router.post("/sensors/{sensor_id}/activation", response_model=Sensor)
def change_activation(sensor_id: str, request: ActivationRequest):
    """激活或取消激活传感器"""
    service = get_security_service()
    sensor = _get_sensor_or_404(service, sensor_id)
    service.change_sensor_activation_status(sensor, request.active)
    return sensor


@security_router.post("/camera/image", response_model=ImageResultResponse)
async def upload_image(request: Request):
    """上传一帧摄像头图像 (JPEG/PNG 原始字节) 进行猫检测

    推理在工作线程中运行，不阻塞事件循环。
    """
    service = get_security_service()
    frame = decode_image(await request.body())

    cat_present = await asyncio.to_thread(service.process_image, frame)

    return ImageResultResponse(
        cat_detected=cat_present,
        alarm_status=await asyncio.to_thread(service.get_alarm_status),
    )


@security_router.get("/events", response_model=List[SecurityEvent])
def recent_events(limit: int = Query(10, ge=1, le=1000)):
    """最近事件 (最新在前)"""
    if _event_log is None:
        return []
    return _event_log.recent(limit)
