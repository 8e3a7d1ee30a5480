"""Project and task routes over the local ProjectStore."""

import sqlite3
from flask import Blueprint, request, jsonify, current_app

projects_bp = Blueprint("projects", __name__)


@projects_bp.route("/projects", methods=["GET"])
def list_projects():
    user_id = request.args.get("user_id", "").strip()
    if not user_id:
        return jsonify({"error": "user_id is required"}), 400
    store = current_app.config["project_store"]
    return jsonify({"projects": store.list_user_projects(user_id)})


@projects_bp.route("/projects", methods=["POST"])
def create_project():
    data = request.get_json(silent=True) or {}
    user_id = (data.get("user_id") or "").strip()
    name = (data.get("name") or "").strip()
    if not user_id or not name:
        return jsonify({"error": "user_id and name are required"}), 400
    store = current_app.config["project_store"]
    project = store.create_project(user_id, name, data.get("description"))
    return jsonify({"project": project}), 201


@projects_bp.route("/tasks", methods=["GET"])
def list_tasks():
    project_id = request.args.get("project_id", "").strip()
    if not project_id:
        return jsonify({"error": "project_id is required"}), 400
    store = current_app.config["project_store"]
    tasks = store.list_project_tasks(project_id, status=request.args.get("status"))
    return jsonify({"tasks": tasks})


@projects_bp.route("/tasks", methods=["POST"])
def create_task():
    data = request.get_json(silent=True) or {}
    project_id = (data.get("project_id") or "").strip()
    user_id = (data.get("user_id") or "").strip()
    title = (data.get("title") or "").strip()
    if not project_id or not user_id or not title:
        return jsonify({"error": "project_id, user_id and title are required"}), 400
    store = current_app.config["project_store"]
    try:
        task = store.create_task(project_id, user_id, title, data.get("description"))
    except sqlite3.IntegrityError:
        return jsonify({"error": f"Project not found: {project_id}"}), 404
    return jsonify({"task": task}), 201


@projects_bp.route("/tasks", methods=["PATCH"])
def update_task():
    data = request.get_json(silent=True) or {}
    task_id = (data.get("id") or "").strip()
    if not task_id:
        return jsonify({"error": "id is required"}), 400
    updates = {k: data[k] for k in ("title", "description", "status") if k in data}
    store = current_app.config["project_store"]
    try:
        task = store.update_task(task_id, **updates)
    except KeyError:
        return jsonify({"error": f"Task not found: {task_id}"}), 404
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({"task": task})
