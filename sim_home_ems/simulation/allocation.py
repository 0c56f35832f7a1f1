"""
Per-step waterfall allocation.

Given PV, base load and the plans of every device, decide the power each
device actually receives (or supplies) during one step:

1. PV covers the base load.
2. Remaining PV serves ``toLoad``/``toHeat`` requests in strategy order, then
   ``toStore`` requests; what is left is exported. Strategies may rank
   storage together with consumers, or keep the surplus away from every
   request.
3. The deficit (uncovered base load plus firm minimums PV could not serve) is
   covered by offers in ascending ``cost_penalty`` order, then by the grid.

Power above a request's firm minimum comes from PV only, so storage is never
charged from the grid or from another storage device. Ties always keep the
device declaration order.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Mapping, Sequence, Tuple

from .device import Device, DeviceKind, DevicePlan, EnvironmentContext, Need, PowerRequest
from .strategy import Strategy, StrategyView
from .trace import DecisionReason, StepFlows

_EPSILON = 1e-6


@dataclass(frozen=True)
class AllocationResult:
    """
    Outcome of one waterfall pass.

    Attributes:
        power_kw: Power per device id (+ consumed, - supplied); every device of
            the step appears, with 0 when nothing was allocated.
        deferred_kw: Requested power left unserved per device id.
        flows: Source/sink split of the step.
        grid_import_kw: Power drawn from the grid.
        grid_export_kw: PV power exported.
        controllable_load_kw: Power delivered to non-storage requests.
        decision_reason: Dominant branch of the step.
    """

    power_kw: Dict[str, float]
    deferred_kw: Dict[str, float]
    flows: StepFlows
    grid_import_kw: float
    grid_export_kw: float
    controllable_load_kw: float
    decision_reason: DecisionReason

    @property
    def pv_used_on_site_kw(self) -> float:
        return self.flows.pv_to_load_kw + self.flows.pv_to_storage_kw


def _serve_from_pv(
    ordered: Sequence[Tuple[int, Device, PowerRequest]],
    surplus_kw: float,
    allocated: Dict[str, float],
) -> Tuple[float, float]:
    served_kw = 0.0
    for _, device, request in ordered:
        if surplus_kw <= 0.0:
            break
        give = min(request.max_accept_kw - allocated[device.id], surplus_kw)
        if give <= 0.0:
            continue
        allocated[device.id] += give
        surplus_kw -= give
        served_kw += give
    return max(surplus_kw, 0.0), served_kw


def _serve_firm_from_pv(
    ordered: Sequence[Tuple[int, Device, PowerRequest]],
    surplus_kw: float,
    allocated: Dict[str, float],
) -> float:
    for _, device, request in ordered:
        if surplus_kw <= 0.0:
            break
        give = min(request.min_accept_kw, surplus_kw)
        allocated[device.id] += give
        surplus_kw -= give
    return max(surplus_kw, 0.0)


def allocate(
    ctx: EnvironmentContext,
    devices: Sequence[Device],
    plans: Mapping[str, DevicePlan],
    strategy: Strategy,
) -> AllocationResult:
    """
    Run the waterfall for one step.

    Args:
        ctx: Step context (PV and base load are read from it).
        devices: Devices in declaration order.
        plans: Plan of each device, keyed by device id.
        strategy: Ranking applied to consumer requests before the waterfall.

    Returns:
        The allocation; it is never larger than any request's
        ``max_accept_kw`` or offer's ``max_supply_kw``.
    """
    pv_kw = ctx.pv_kw
    base_kw = ctx.base_load_kw
    pv_to_base_kw = min(pv_kw, base_kw)
    uncovered_base_kw = base_kw - pv_to_base_kw
    surplus_kw = pv_kw - pv_to_base_kw

    allocated: Dict[str, float] = {device.id: 0.0 for device in devices}
    consumers: List[Tuple[int, Device, PowerRequest]] = []
    storage: List[Tuple[int, Device, PowerRequest]] = []
    offers = []
    for index, device in enumerate(devices):
        plan = plans.get(device.id)
        if plan is None:
            continue
        if plan.request is not None:
            entry = (index, device, plan.request)
            if plan.request.need is Need.TO_STORE:
                storage.append(entry)
            else:
                consumers.append(entry)
        if plan.offer is not None:
            offers.append((plan.offer.cost_penalty, index, device, plan.offer))

    view = StrategyView(ctx, devices, consumers + storage)
    ordered_consumers = strategy.order(consumers, view)
    if not strategy.shares_pv:
        pv_to_consumers_kw = pv_to_storage_kw = 0.0
    elif strategy.mixes_storage:
        surplus_kw = _serve_firm_from_pv(ordered_consumers, surplus_kw, allocated)
        surplus_kw, _ = _serve_from_pv(strategy.order(consumers + storage, view), surplus_kw, allocated)
        pv_to_consumers_kw = sum(allocated[device.id] for _, device, _ in consumers)
        pv_to_storage_kw = sum(allocated[device.id] for _, device, _ in storage)
    else:
        surplus_kw, pv_to_consumers_kw = _serve_from_pv(ordered_consumers, surplus_kw, allocated)
        surplus_kw, pv_to_storage_kw = _serve_from_pv(strategy.order(storage, view), surplus_kw, allocated)

    firm_topup: List[Tuple[str, float]] = []
    for _, device, request in ordered_consumers:
        shortfall = request.min_accept_kw - allocated[device.id]
        if shortfall > _EPSILON:
            firm_topup.append((device.id, shortfall))
    firm_kw = sum(amount for _, amount in firm_topup)
    # surplus is only left over here when the strategy kept PV away from requests
    pv_to_firm_kw = min(surplus_kw, firm_kw)
    export_kw = surplus_kw - pv_to_firm_kw
    deficit_kw = uncovered_base_kw + firm_kw - pv_to_firm_kw

    storage_to_load_kw = 0.0
    for _, _, device, offer in sorted(offers, key=lambda item: (item[0], item[1])):
        if deficit_kw <= _EPSILON:
            break
        supply = min(offer.max_supply_kw, deficit_kw)
        allocated[device.id] -= supply
        deficit_kw -= supply
        storage_to_load_kw += supply
    grid_import_kw = max(deficit_kw, 0.0)

    for device_id, amount in firm_topup:
        allocated[device_id] += amount

    deferred: Dict[str, float] = {}
    for _, device, request in consumers + storage:
        unmet = request.max_accept_kw - allocated[device.id]
        deferred[device.id] = unmet if unmet > _EPSILON else 0.0

    controllable_kw = pv_to_consumers_kw + firm_kw
    flows = StepFlows(
        pv_to_load_kw=pv_to_base_kw + pv_to_consumers_kw + pv_to_firm_kw,
        pv_to_storage_kw=pv_to_storage_kw,
        pv_to_grid_kw=export_kw,
        storage_to_load_kw=storage_to_load_kw,
        grid_to_load_kw=grid_import_kw,
    )
    reason = _decision_reason(devices, plans, allocated, flows)
    return AllocationResult(
        power_kw=allocated,
        deferred_kw=deferred,
        flows=flows,
        grid_import_kw=grid_import_kw,
        grid_export_kw=export_kw,
        controllable_load_kw=controllable_kw,
        decision_reason=reason,
    )


def _decision_reason(
    devices: Sequence[Device],
    plans: Mapping[str, DevicePlan],
    allocated: Mapping[str, float],
    flows: StepFlows,
) -> DecisionReason:
    dhw_tanks = [device for device in devices if device.kind is DeviceKind.DHW_TANK]
    for tank in dhw_tanks:
        plan = plans.get(tank.id)
        if plan is not None and plan.request is not None and plan.request.min_accept_kw > _EPSILON:
            return DecisionReason.ECS_DEADLINE_FORCE
    if any(allocated[tank.id] > _EPSILON for tank in dhw_tanks):
        return DecisionReason.ECS_PREHEAT
    if flows.pv_to_storage_kw > _EPSILON:
        return DecisionReason.BATT_CHARGE
    if flows.storage_to_load_kw > _EPSILON:
        return DecisionReason.BATT_DISCHARGE
    if flows.grid_to_load_kw > _EPSILON:
        return DecisionReason.GRID_IMPORT
    if flows.pv_to_grid_kw > _EPSILON:
        return DecisionReason.EXPORT_SURPLUS
    return DecisionReason.IDLE
