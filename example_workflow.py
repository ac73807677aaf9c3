"""Example workflow demonstrating the orchestrator capabilities."""

import asyncio
import random

from workflow_orchestrator.config import get_config
from workflow_orchestrator.core import (
    ActionExecutorRegistry,
    ExecutionEngine,
    GraphManager,
    InMemoryEventBus,
)
from workflow_orchestrator.models import (
    ActionNode,
    ContainerNode,
    ContainerNodeType,
    ExecutionContext,
    ExecutionMode,
    ExternalCallPayload,
    KnowledgeLookupPayload,
    NestedWorkflowPayload,
    RetryPolicy,
    RetryStrategy,
    WorkflowGraph,
)


def create_onboarding_workflow() -> WorkflowGraph:
    """
    Create an example customer onboarding workflow.

    This workflow:
    1. Validates the incoming customer record (critical)
    2. Looks up the onboarding policy and creates the CRM account in parallel
    3. Provisions the account, retrying a flaky billing integration
    4. Runs the nested notification workflow
    """
    containers = [
        ContainerNode(
            id="intake",
            name="Customer intake",
            node_type=ContainerNodeType.INPUT,
            metadata={"critical": True}
        ),
        ContainerNode(
            id="policy",
            name="Policy lookup",
            dependencies={"intake"}
        ),
        ContainerNode(
            id="crm",
            name="CRM account",
            dependencies={"intake"},
            execution_mode=ExecutionMode.PARALLEL
        ),
        ContainerNode(
            id="provisioning",
            name="Provisioning",
            dependencies={"policy", "crm"}
        ),
        ContainerNode(
            id="notify",
            name="Notifications",
            node_type=ContainerNodeType.OUTPUT,
            dependencies={"provisioning"}
        ),
    ]

    actions = [
        ActionNode(
            id="validate_record",
            parent_container_id="intake",
            name="Validate customer record",
            execution_order=1,
            payload=ExternalCallPayload(reference_id="validator", execution_parameters={"strict": True})
        ),
        ActionNode(
            id="fetch_policy",
            parent_container_id="policy",
            name="Fetch onboarding policy",
            execution_order=1,
            payload=KnowledgeLookupPayload(
                kb_reference_id="kb-onboarding",
                short_description="Onboarding policy",
                search_keywords=["onboarding", "kyc"]
            )
        ),
        ActionNode(
            id="create_account",
            parent_container_id="crm",
            name="Create CRM account",
            execution_order=1,
            payload=ExternalCallPayload(reference_id="crm", output_mapping={"id": "accountId"})
        ),
        ActionNode(
            id="assign_owner",
            parent_container_id="crm",
            name="Assign account owner",
            execution_order=2,
            payload=ExternalCallPayload(reference_id="crm-owner")
        ),
        ActionNode(
            id="setup_billing",
            parent_container_id="provisioning",
            name="Set up billing",
            execution_order=1,
            payload=ExternalCallPayload(reference_id="billing", timeout_seconds=2.0),
            retry_policy=RetryPolicy(
                strategy=RetryStrategy.EXPONENTIAL,
                max_attempts=4,
                base_delay_seconds=0.05,
                max_delay_seconds=0.5
            )
        ),
        ActionNode(
            id="send_welcome",
            parent_container_id="notify",
            name="Send welcome notifications",
            execution_order=1,
            payload=NestedWorkflowPayload(
                nested_model_id="notifications",
                context_mapping={"template": "welcome"},
                extract_outputs=["completed_nodes"]
            )
        ),
    ]

    return WorkflowGraph(
        model_id="customer-onboarding",
        name="Customer Onboarding",
        containers=containers,
        actions=actions
    )


def create_notification_workflow() -> WorkflowGraph:
    """Nested workflow sending notifications over two channels."""
    return WorkflowGraph(
        model_id="notifications",
        name="Notifications",
        containers=[ContainerNode(id="send", name="Send", execution_mode=ExecutionMode.PARALLEL)],
        actions=[
            ActionNode(
                id=f"send_{channel}",
                parent_container_id="send",
                execution_order=index,
                payload=ExternalCallPayload(reference_id=channel)
            )
            for index, channel in enumerate(["email", "sms"], start=1)
        ]
    )


async def demo_caller(payload: ExternalCallPayload, context: ExecutionContext):
    """Stand-in for real integrations; billing fails transiently."""
    await asyncio.sleep(0.01)
    if payload.reference_id == "billing" and random.random() < 0.5:
        raise ConnectionError("billing service unavailable")
    return {"id": f"{payload.reference_id}-{context.execution_id[:8]}", "status": "ok"}


async def main():
    """Run the example workflow and print its event trail."""
    config = get_config()
    config.configure_logging()

    workflow = create_onboarding_workflow()
    nested = {"notifications": create_notification_workflow()}

    print("🔧 Workflow Orchestrator - Example Workflow")
    print("=" * 50)
    print(f"Workflow Name: {workflow.name}")
    print(f"Number of Containers: {len(workflow.containers)}")
    print(f"Number of Actions: {len(workflow.actions)}")
    print()

    graph_manager = GraphManager()
    print("📋 Execution Levels:")
    for level in graph_manager.compute_order(workflow):
        print(f"  • Level {level.index}: {', '.join(level.node_ids)}")
    print(f"Critical Path: {' → '.join(graph_manager.find_critical_path(workflow))}")
    print()

    event_bus = InMemoryEventBus()
    event_bus.subscribe(lambda event: print(f"  ⚡ {event.event_type.value} {event.event_data.get('nodeId', '')}"))

    engine = ExecutionEngine(
        event_bus=event_bus,
        executor_registry=ActionExecutorRegistry.create_default(caller=demo_caller, resolver=nested.get),
        config=config
    )

    print("🚀 Events:")
    context = ExecutionContext(model_id=workflow.model_id, execution_id="onboarding-demo", user_id="demo")
    result = await engine.execute(workflow, context)
    print()

    if result.is_failure:
        print(f"❌ Execution could not run: {result.error}")
        return

    execution = result.value
    print(f"Status: {execution.status.value}")
    print(f"Completed Nodes: {execution.completed_nodes}")
    print(f"Failed Nodes: {execution.failed_nodes}")
    print(f"Execution Time: {execution.execution_time:.1f}ms")
    if execution.success:
        print("✅ Workflow executed successfully!")
    else:
        for error in execution.errors:
            print(f"  ⚠️  {error}")


if __name__ == "__main__":
    asyncio.run(main())
