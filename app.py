# ════════════════════════════════════════════════
# ▶ IMPORTS
# ════════════════════════════════════════════════
import atexit
import logging
import time
from dataclasses import dataclass

import psycopg2
from flask import Flask, render_template, request, redirect, url_for, flash, session, jsonify, g, current_app, send_from_directory
from flask_login import LoginManager, login_user, login_required, logout_user, current_user

import config
from database.db_connection import Database
from logging_setup import configure_logging
from stores.auth_store import AdminUser, AuthStore
from stores.category_store import CategoryStore
from stores.image_store import ImageStore, UploadError
from stores.post_store import PostStore


# ════════════════════════════════════════════════
# ▶ LOAD VARIABLES
# ════════════════════════════════════════════════

configure_logging(config.LOG_LEVEL)
logger = logging.getLogger(__name__)


# ════════════════════════════════════════════════
# ▶ INITIATE FLASK APP
# ════════════════════════════════════════════════

app = Flask(__name__)
app.secret_key = config.SECRET_KEY
app.config.update(
    PERMANENT_SESSION_LIFETIME=config.SESSION_LIFETIME,  # Rolling, refreshed on every request
    SESSION_REFRESH_EACH_REQUEST=True,
    SESSION_COOKIE_NAME=config.SESSION_COOKIE_NAME,
    SESSION_COOKIE_HTTPONLY=True,
    SESSION_COOKIE_SAMESITE=config.SESSION_COOKIE_SAMESITE,
    SESSION_COOKIE_SECURE=config.IS_PRODUCTION,
    MAX_CONTENT_LENGTH=config.MAX_REQUEST_SIZE,
)

login_manager = LoginManager()
login_manager.init_app(app)
login_manager.login_view = "login"
login_manager.login_message = "Please log in to access this page."
login_manager.login_message_category = "warning"


# ════════════════════════════════════════════════
# ▶ STORES
# ════════════════════════════════════════════════

@dataclass
class Stores:
    posts: PostStore
    categories: CategoryStore
    images: ImageStore
    auth: AuthStore


def build_stores(db):
    ''' Wire every store to one database client '''
    images = ImageStore(db)
    categories = CategoryStore(db)
    return Stores(
        posts=PostStore(db, images, categories),
        categories=categories,
        images=images,
        auth=AuthStore(db),
    )


db = Database(config.DATABASE_URL, config.DB_POOL_MIN, config.DB_POOL_MAX)
app.extensions["stores"] = build_stores(db)


def stores():
    return current_app.extensions["stores"]


# ════════════════════════════════════════════════
# ▶ SESSION AUTHENTICATION
# ════════════════════════════════════════════════

@login_manager.user_loader
def load_user(user_id):
    '''
    Load admin from database by id for Flask-Login.

    Called on every request that carries a session cookie.
    '''
    try:
        return stores().auth.get_user(int(user_id))
    except ValueError:
        return None


def wants_json():
    return (
        request.is_json
        or request.headers.get("X-Requested-With") == "XMLHttpRequest"
        or "application/json" in request.headers.get("Accept", "")
    )


@login_manager.unauthorized_handler
def unauthorized():
    ''' Anonymous request to an admin route: 401 for scripts, login page for browsers '''
    if wants_json():
        return jsonify(success=False, error="Authentication required", redirect=url_for("login")), 401
    flash(login_manager.login_message, login_manager.login_message_category)
    return redirect(url_for("login"))


# ════════════════════════════════════════════════
# ▶ REQUEST LOGGING & TEMPLATE CONTEXT
# ════════════════════════════════════════════════

@app.before_request
def start_timer():
    g.request_started = time.perf_counter()


@app.after_request
def log_request(response):
    started = g.get("request_started")
    duration_ms = round((time.perf_counter() - started) * 1000, 1) if started else None
    log = logger.warning if response.status_code >= 400 else logger.info
    log(
        f"HTTP {response.status_code} {request.method} {request.path}",
        extra={
            "method": request.method,
            "path": request.path,
            "status": response.status_code,
            "duration_ms": duration_ms,
            "ip": request.remote_addr,
        },
    )
    return response


@app.context_processor
def inject_site():
    return {"site_name": config.SITE_NAME, "site_description": config.SITE_DESCRIPTION}


# ════════════════════════════════════════════════
# ▶ HELPERS
# ════════════════════════════════════════════════

def parse_category_id(raw):
    try:
        return int(raw) if raw else None
    except (TypeError, ValueError):
        return None


def accept_uploads():
    '''
    Stage the images of the current request.

    A rejected batch is reported as a message; the post itself is still saved.
    '''
    try:
        return stores().images.accept(request.files.getlist("images")), []
    except UploadError as e:
        logger.warning("Image upload rejected", extra={"reason": str(e)})
        return [], [str(e)]


def not_found(message):
    if wants_json():
        return jsonify(success=False, error=message), 404
    return render_template("public/404.html", message=message), 404


def render_post_form(post, status=200, errors=None):
    return render_template(
        "admin/post_form.html",
        post=post,
        categories=stores().categories.list_active(),
        errors=errors or [],
    ), status


# ════════════════════════════════════════════════
# ▶ INDEX PAGE
# ════════════════════════════════════════════════

@app.route("/", endpoint="index")
def index():
    '''
    Home page.

    Fetch active posts and categories from database and render page.
    '''
    posts = stores().posts.list(include_inactive=False)
    categories = stores().categories.counts_by_category()
    return render_template("public/index.html", posts=posts, categories=categories)


# ════════════════════════════════════════════════
# ▶ CATEGORY PAGE
# ════════════════════════════════════════════════

@app.route("/category/<slug>", endpoint="category")
def category(slug):
    current_category = stores().categories.get_by_slug(slug)
    if not current_category:
        return not_found("Category not found")

    posts = stores().posts.list_by_category(slug)
    categories = stores().categories.counts_by_category()
    return render_template(
        "public/index.html",
        posts=posts,
        categories=categories,
        current_category=current_category,
    )


# ════════════════════════════════════════════════
# ▶ SEARCH PAGE
# ════════════════════════════════════════════════

@app.route("/search", endpoint="search")
def search():
    query = request.args.get("q", "")
    category_slug = request.args.get("category") or None
    if not query:
        return redirect(url_for("index"))

    posts = stores().posts.search(query, category_slug=category_slug, include_inactive=False)
    categories = stores().categories.list_active()
    return render_template(
        "public/search_results.html",
        posts=posts,
        query=query,
        category_slug=category_slug,
        categories=categories,
    )


# ════════════════════════════════════════════════
# ▶ POST DETAIL PAGE
# ════════════════════════════════════════════════

@app.route("/post/<post_id>", endpoint="post_detail")
def post_detail(post_id):
    post = stores().posts.get_by_id(post_id)
    if not post or not post["is_active"]:
        return not_found("Post not found")
    return render_template("public/post_detail.html", post=post)


# ════════════════════════════════════════════════
# ▶ PUBLIC API
# ════════════════════════════════════════════════

@app.route("/api/posts", endpoint="api_posts")
def api_posts():
    try:
        posts = stores().posts.list(include_inactive=False)
    except psycopg2.Error:
        logger.exception("Error fetching posts API")
        return jsonify(success=False, error="Failed to fetch posts"), 500
    return jsonify(success=True, posts=posts)


@app.route("/uploads/<path:filename>", endpoint="uploads")
def uploads(filename):
    ''' Processed images and thumbnails '''
    return send_from_directory(stores().images.public_dir, filename)


# ════════════════════════════════════════════════
# ▶ LOGIN
# ════════════════════════════════════════════════

@app.route("/admin/login", methods=["GET", "POST"], endpoint="login")
def login():
    ''' Login route for admins '''
    if request.method == "POST":
        username = request.form.get("username", "").strip()
        password = request.form.get("password", "")

        result = stores().auth.authenticate(username, password)
        if not result["success"]:
            logger.info("Login failed", extra={"username": username})
            return render_template("admin/login.html", error=result["message"], username=username)

        user = result["user"]
        login_user(AdminUser(user["id"], user["username"]))
        session.permanent = True
        logger.info("Login successful", extra={"admin_user_id": user["id"]})
        return redirect(url_for("dashboard"))

    if current_user.is_authenticated:
        return redirect(url_for("dashboard"))
    return render_template("admin/login.html", error=None, username="")


# ════════════════════════════════════════════════
# ▶ LOGOUT
# ════════════════════════════════════════════════

@app.route("/admin/logout", endpoint="logout")
def logout():
    ''' Logout route for admins '''
    if current_user.is_authenticated:
        stores().auth.record_logout(current_user.id, current_user.username)
        logout_user()
    session.clear()
    return redirect(url_for("index"))


# ════════════════════════════════════════════════
# ▶ ADMIN DASHBOARD PAGE
# ════════════════════════════════════════════════

@app.route("/admin/dashboard", endpoint="dashboard")
@login_required
def dashboard():
    ''' All posts, inactive ones included, in display order '''
    posts = stores().posts.list(include_inactive=True)
    categories = stores().categories.list_active()
    return render_template("admin/dashboard.html", posts=posts, categories=categories)


# ════════════════════════════════════════════════
# ▶ ADMIN: ADD NEW POST
# ════════════════════════════════════════════════

@app.route("/admin/create", methods=["GET", "POST"], endpoint="create_post")
@login_required
def create_post():
    ''' Add new post to database '''
    if request.method == "GET":
        return render_post_form({"title": "", "content": "", "category_id": None, "images": []})

    title = request.form.get("title", "")
    content = request.form.get("content", "")
    category_id = parse_category_id(request.form.get("category_id"))

    staged, upload_errors = accept_uploads()
    result = stores().posts.create(
        title,
        content,
        category_id,
        admin_user_id=current_user.id,
        images=staged,
        captions=request.form.getlist("captions"),
    )

    if not result["success"]:
        stores().images.discard(staged)
        post = {"title": title, "content": content, "category_id": category_id, "images": []}
        if result.get("errors"):
            return render_post_form(post, 400, result["errors"])
        return render_post_form(post, 500, [result["error"]])

    for message in upload_errors + result["image_errors"]:
        flash(message, "warning")
    flash("Post created.", "success")
    return redirect(url_for("dashboard"))


# ════════════════════════════════════════════════
# ▶ ADMIN: EDIT POST
# ════════════════════════════════════════════════

@app.route("/admin/edit/<post_id>", methods=["GET", "POST"], endpoint="edit_post")
@login_required
def edit_post(post_id):
    ''' Edit an existing post, uploaded images are added to the ones it has '''
    if request.method == "GET":
        post = stores().posts.get_by_id(post_id)
        if not post:
            return not_found("Post not found")
        return render_post_form(post)

    title = request.form.get("title", "")
    content = request.form.get("content", "")
    category_id = parse_category_id(request.form.get("category_id"))

    staged, upload_errors = accept_uploads()
    result = stores().posts.update(
        post_id,
        title,
        content,
        category_id,
        admin_user_id=current_user.id,
        images=staged,
        captions=request.form.getlist("captions"),
    )

    if not result["success"]:
        stores().images.discard(staged)
        if result.get("error") == "Post not found":
            return not_found("Post not found")
        post = {
            "id": post_id,
            "title": title,
            "content": content,
            "category_id": category_id,
            "images": stores().images.list_for_post(post_id),
        }
        if result.get("errors"):
            return render_post_form(post, 400, result["errors"])
        return render_post_form(post, 500, [result["error"]])

    for message in upload_errors + result["image_errors"]:
        flash(message, "warning")
    flash("Post updated.", "success")
    return redirect(url_for("dashboard"))


# ════════════════════════════════════════════════
# ▶ ADMIN: DELETE POST
# ════════════════════════════════════════════════

@app.route("/admin/delete/<post_id>", methods=["POST"], endpoint="delete_post")
@login_required
def delete_post(post_id):
    result = stores().posts.delete(post_id, admin_user_id=current_user.id)
    if not result["success"]:
        if result["error"] == "Post not found":
            return not_found("Post not found")
        if wants_json():
            return jsonify(success=False, error=result["error"]), 500
        return render_template("error.html", message=result["error"]), 500

    if wants_json():
        return jsonify(success=True)
    flash("Post deleted.", "success")
    return redirect(url_for("dashboard"))


# ════════════════════════════════════════════════
# ▶ ADMIN: ACTIVATE / DEACTIVATE POST
# ════════════════════════════════════════════════

@app.route("/admin/toggle-active/<post_id>", methods=["POST"], endpoint="toggle_post_active")
@login_required
def toggle_post_active(post_id):
    post = stores().posts.get_by_id(post_id)
    if not post:
        return not_found("Post not found")

    result = stores().posts.set_active(post_id, not post["is_active"], admin_user_id=current_user.id)
    if wants_json():
        return jsonify(result), 200 if result["success"] else 500

    if result["success"]:
        flash("Post is now visible." if result["is_active"] else "Post is now hidden.", "success")
    else:
        flash(result["error"], "danger")
    return redirect(url_for("dashboard"))


# ════════════════════════════════════════════════
# ▶ ADMIN: DELETE IMAGE
# ════════════════════════════════════════════════

@app.route("/admin/delete-image/<image_id>", methods=["POST"], endpoint="delete_image")
@login_required
def delete_image(image_id):
    result = stores().images.delete(image_id)
    if result["success"]:
        return jsonify(success=True)
    status = 404 if result["error"] == "Image not found" else 500
    return jsonify(success=False, error=result["error"]), status


# ════════════════════════════════════════════════
# ▶ ADMIN: REORDER POSTS
# ════════════════════════════════════════════════

@app.route("/admin/reorder", methods=["POST"], endpoint="reorder_posts")
@login_required
def reorder_posts():
    ''' Body: {"order": [post ids in display order]} '''
    data = request.get_json(silent=True)
    order = data.get("order") if isinstance(data, dict) else None
    result = stores().posts.reorder(order, admin_user_id=current_user.id)

    if result["success"]:
        logger.info("Posts reordered", extra={"count": len(order)})
        return jsonify(success=True)

    status = 400 if result["error"] == "Invalid post IDs array" else 500
    return jsonify(success=False, error=result["error"]), status


# ════════════════════════════════════════════════
# ▶ ADMIN: STATISTICS
# ════════════════════════════════════════════════

@app.route("/admin/api/stats", endpoint="stats")
@login_required
def stats():
    try:
        post_stats = stores().posts.get_stats()
    except psycopg2.Error:
        logger.exception("Error fetching stats")
        return jsonify(success=False, error="Failed to fetch statistics"), 500
    return jsonify(success=True, stats=post_stats)


# ════════════════════════════════════════════════
# ▶ ADMIN: CLEANUP ORPHANED IMAGES
# ════════════════════════════════════════════════

@app.route("/admin/cleanup-images", methods=["POST"], endpoint="cleanup_images")
@login_required
def cleanup_images():
    result = stores().images.cleanup_orphaned()
    return jsonify(result), 200 if result["success"] else 500


# ════════════════════════════════════════════════
# ▶ ADMIN: DEACTIVATE CATEGORY
# ════════════════════════════════════════════════

@app.route("/admin/categories/<int:category_id>/deactivate", methods=["POST"], endpoint="deactivate_category")
@login_required
def deactivate_category(category_id):
    result = stores().categories.deactivate(category_id)
    if result["success"]:
        return jsonify(result)
    status = 404 if result["error"] == "Category not found" else 500
    return jsonify(success=False, error=result["error"]), status


# ════════════════════════════════════════════════
# ▶ ERROR PAGES
# ════════════════════════════════════════════════

@app.errorhandler(404)
def page_not_found(e):
    return not_found("Page not found")


@app.errorhandler(413)
def request_too_large(e):
    message = f"Upload too large. Maximum size is {config.MAX_FILE_SIZE // (1024 * 1024)}MB per image."
    if wants_json():
        return jsonify(success=False, error=message), 413
    return render_template("error.html", message=message), 413


@app.errorhandler(500)
def internal_error(e):
    # Flask has already logged the original exception
    if wants_json():
        return jsonify(success=False, error="Something went wrong"), 500
    return render_template("error.html", message="Something went wrong. Please try again later."), 500


# ════════════════════════════════════════════════
# ▶ MAIN ENTRY POINT
# ════════════════════════════════════════════════

if __name__ == '__main__':
    db.open()
    atexit.register(db.close)

    # For production deploy use wsgi.py behind a WSGI server
    app.run(debug=not config.IS_PRODUCTION)
