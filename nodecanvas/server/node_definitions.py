"""
Demo node type catalog.

Call `register_demo_node_types(registry)` once (state.py does it on startup)
so the editor has a catalog to place nodes from. Types that are already
registered are skipped, so repeated calls from tests are harmless.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List

from ..noderegistry.NodeRegistry import NodeTypeRegistry

logger = logging.getLogger(__name__)


DEMO_NODE_TYPES: List[Dict[str, Any]] = [
    # ── Triggers ─────────────────────────────────────────────────────────────
    {
        "name": "manualTrigger",
        "displayName": "When clicking 'Test workflow'",
        "group": ["trigger"],
        "inputs": [],
        "outputs": ["main"],
        "maxNodes": 1,
    },
    {
        "name": "webhook",
        "displayName": "Webhook",
        "version": [1, 2],
        "group": ["trigger"],
        "inputs": [],
        "outputs": ["main"],
        "webhooks": [{"name": "default", "httpMethod": "GET", "path": "={{$parameter[\"path\"]}}"}],
        "properties": [{"name": "path", "default": ""}, {"name": "httpMethod", "default": "GET"}],
    },
    {
        "name": "formTrigger",
        "displayName": "On form submission",
        "group": ["trigger"],
        "inputs": [],
        "outputs": ["main"],
        "webhooks": [{"name": "default", "httpMethod": "POST"}],
        "properties": [{"name": "path", "default": ""}, {"name": "formTitle", "default": ""}],
    },
    # ── Core ────────────────────────────────────────────────────────────────
    {
        "name": "set",
        "displayName": "Edit Fields",
        "version": [1, 2, 3],
        "inputs": ["main"],
        "outputs": ["main"],
        "properties": [{"name": "values", "default": {}}],
    },
    {
        "name": "if",
        "displayName": "If",
        "inputs": ["main"],
        "outputs": [{"type": "main", "displayName": "true"}, {"type": "main", "displayName": "false"}],
        "properties": [{"name": "conditions", "default": {}}],
    },
    {
        "name": "merge",
        "displayName": "Merge",
        "inputs": [{"type": "main", "displayName": "Input 1"}, {"type": "main", "displayName": "Input 2"}],
        "outputs": ["main"],
        "properties": [{"name": "mode", "default": "append"}],
    },
    {
        "name": "httpRequest",
        "displayName": "HTTP Request",
        "version": [1, 2, 3, 4],
        "inputs": ["main"],
        "outputs": ["main"],
        "credentials": [{"name": "httpBasicAuth", "required": False}],
        "properties": [{"name": "url", "default": ""}, {"name": "method", "default": "GET"}],
    },
    {
        "name": "noOp",
        "displayName": "No Operation, do nothing",
        "inputs": ["main"],
        "outputs": ["main"],
    },
    {
        "name": "stickyNote",
        "displayName": "Sticky Note",
        "inputs": [],
        "outputs": [],
        "properties": [{"name": "content", "default": ""}],
    },
    # ── AI ──────────────────────────────────────────────────────────────────
    {
        "name": "agent",
        "displayName": "AI Agent",
        "inputs": [
            "main",
            {"type": "ai_languageModel", "displayName": "Chat Model", "required": True, "maxConnections": 1},
            {"type": "ai_memory", "displayName": "Memory", "maxConnections": 1},
            {"type": "ai_tool", "displayName": "Tool"},
        ],
        "outputs": ["main"],
        "properties": [{"name": "text", "default": ""}],
    },
    {
        "name": "lmChatOpenAi",
        "displayName": "OpenAI Chat Model",
        "inputs": [],
        "outputs": ["ai_languageModel"],
        "credentials": [{"name": "openAiApi", "required": True}],
        "properties": [{"name": "model", "default": "gpt-4o-mini"}],
    },
    {
        "name": "memoryBufferWindow",
        "displayName": "Window Buffer Memory",
        "inputs": [],
        "outputs": ["ai_memory"],
        "properties": [{"name": "contextWindowLength", "default": 5}],
    },
    {
        "name": "toolCode",
        "displayName": "Code Tool",
        "inputs": [],
        "outputs": ["ai_tool"],
        "properties": [{"name": "jsCode", "default": ""}],
    },
    {
        "name": "vectorStoreInMemory",
        "displayName": "In-Memory Vector Store",
        "inputs": [{"type": "ai_embedding", "displayName": "Embedding", "required": True}],
        "outputs": ["ai_vectorStore"],
    },
    {
        "name": "embeddingsOpenAi",
        "displayName": "Embeddings OpenAI",
        "inputs": [],
        "outputs": ["ai_embedding"],
        "credentials": [{"name": "openAiApi", "required": True}],
    },
    {
        "name": "toolVectorStore",
        "displayName": "Vector Store Question Answer Tool",
        "inputs": [
            {"type": "ai_vectorStore", "displayName": "Vector Store", "filter": {"nodes": ["vectorStoreInMemory"]}},
            {"type": "ai_languageModel", "displayName": "Model"},
        ],
        "outputs": ["ai_tool"],
    },
]


def register_demo_node_types(registry: NodeTypeRegistry) -> NodeTypeRegistry:
    for data in DEMO_NODE_TYPES:
        if registry.describe(data["name"]) is not None:
            continue
        registry.register_from_dict(data)
    logger.debug("demo catalog: %d node types", len(DEMO_NODE_TYPES))
    return registry
