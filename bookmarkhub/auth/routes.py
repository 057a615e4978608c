import re

from flask import (
    current_app,
    flash,
    redirect,
    render_template,
    request,
    session,
    url_for,
)

from bookmarkhub.auth import auth_bp
from bookmarkhub.services.auth_client import (
    OAUTH_PROVIDERS,
    AuthError,
    generate_pkce_pair,
    get_auth_client,
)
from bookmarkhub.services.common import safe_redirect_target
from bookmarkhub.services.security import (
    clear_session_cookies,
    current_access_token,
    load_request_session,
    set_session_cookies,
)

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
PASSWORD_MIN = 6
PASSWORD_MAX = 72

_SIGNIN_ERRORS = {
    "session_expired": "Your session has expired. Please sign in again.",
    "auth_callback": "Could not complete sign in. Please try again.",
}


def _callback_url(next_path: str | None = None) -> str:
    base = current_app.config["APP_URL"]
    if next_path:
        return f"{base}{url_for('auth.callback', next=next_path)}"
    return f"{base}{url_for('auth.callback')}"


def _start_pkce() -> str:
    verifier, challenge = generate_pkce_pair()
    session["pkce_verifier"] = verifier
    return challenge


def _validate_new_password(password: str, confirm: str) -> str | None:
    if len(password) < PASSWORD_MIN:
        return f"Password must be at least {PASSWORD_MIN} characters."
    if len(password) > PASSWORD_MAX:
        return f"Password must be at most {PASSWORD_MAX} characters."
    if not confirm:
        return "Please confirm your password."
    if password != confirm:
        return "Passwords do not match."
    return None


@auth_bp.route("/signin", methods=["GET", "POST"])
def signin():
    next_url = safe_redirect_target(
        request.form.get("next") or request.args.get("next"),
        url_for("web.dashboard"),
    )
    if request.method == "POST":
        email = (request.form.get("email") or "").strip()
        password = request.form.get("password") or ""

        if not _EMAIL_RE.match(email):
            flash("Please enter a valid email address.", "error")
        elif not password:
            flash("Password is required.", "error")
        else:
            try:
                auth_session = get_auth_client().sign_in_with_password(email, password)
            except AuthError as exc:
                flash(exc.message, "error")
            else:
                flash("Signed in successfully", "success")
                return set_session_cookies(redirect(next_url), auth_session)
    else:
        message = _SIGNIN_ERRORS.get(request.args.get("error") or "")
        if message:
            flash(message, "error")

    return render_template(
        "auth/signin.html", next_url=next_url, providers=OAUTH_PROVIDERS
    )


@auth_bp.route("/signup", methods=["GET", "POST"])
def signup():
    if request.method == "POST":
        email = (request.form.get("email") or "").strip()
        password = request.form.get("password") or ""
        confirm = request.form.get("confirm_password") or ""

        problem = None
        if not _EMAIL_RE.match(email):
            problem = "Please enter a valid email address."
        else:
            problem = _validate_new_password(password, confirm)

        if problem:
            flash(problem, "error")
        else:
            try:
                _user, auth_session = get_auth_client().sign_up(
                    email, password, redirect_to=_callback_url()
                )
            except AuthError as exc:
                flash(exc.message, "error")
            else:
                if auth_session is not None:
                    flash("Account created successfully", "success")
                    return set_session_cookies(
                        redirect(url_for("web.dashboard")), auth_session
                    )
                flash("Check your email to confirm your account", "success")
                return redirect(url_for("auth.signin"))

    return render_template("auth/signup.html", providers=OAUTH_PROVIDERS)


@auth_bp.route("/oauth/<provider>")
def oauth(provider: str):
    next_path = safe_redirect_target(request.args.get("next"), "")
    try:
        location = get_auth_client().oauth_authorize_url(
            provider,
            redirect_to=_callback_url(next_path or None),
            code_challenge=_start_pkce(),
        )
    except AuthError as exc:
        flash(exc.message, "error")
        return redirect(url_for("auth.signin"))
    return redirect(location)


@auth_bp.route("/magic-link", methods=["POST"])
def magic_link():
    email = (request.form.get("email") or "").strip()
    if not _EMAIL_RE.match(email):
        flash("Please enter a valid email address.", "error")
        return redirect(url_for("auth.signin"))
    try:
        get_auth_client().send_magic_link(
            email, redirect_to=_callback_url(), code_challenge=_start_pkce()
        )
    except AuthError as exc:
        flash(exc.message, "error")
        return redirect(url_for("auth.signin"))
    flash("Check your email for a sign-in link.", "success")
    return redirect(url_for("auth.signin"))


@auth_bp.route("/callback")
def callback():
    next_url = safe_redirect_target(request.args.get("next"), url_for("web.dashboard"))
    provider_error = request.args.get("error_description") or request.args.get("error")
    if provider_error:
        flash(provider_error, "error")
        return redirect(url_for("auth.signin"))

    code = request.args.get("code")
    verifier = session.pop("pkce_verifier", None)
    if not code or not verifier:
        return redirect(url_for("auth.signin", error="auth_callback"))

    try:
        auth_session = get_auth_client().exchange_code_for_session(code, verifier)
    except AuthError as exc:
        flash(exc.message, "error")
        return redirect(url_for("auth.signin"))
    return set_session_cookies(redirect(next_url), auth_session)


@auth_bp.route("/forgot-password", methods=["GET", "POST"])
def forgot_password():
    submitted = False
    if request.method == "POST":
        email = (request.form.get("email") or "").strip()
        if not _EMAIL_RE.match(email):
            flash("Please enter a valid email address.", "error")
        else:
            try:
                get_auth_client().reset_password_for_email(
                    email,
                    redirect_to=_callback_url(url_for("auth.update_password")),
                    code_challenge=_start_pkce(),
                )
            except AuthError as exc:
                flash(exc.message, "error")
            else:
                submitted = True

    return render_template("auth/forgot_password.html", submitted=submitted)


@auth_bp.route("/update-password", methods=["GET", "POST"])
def update_password():
    resolution = load_request_session()
    if resolution.user is None:
        return redirect(url_for("auth.signin", error="session_expired"))

    if request.method == "POST":
        password = request.form.get("password") or ""
        confirm = request.form.get("confirm_password") or ""
        problem = _validate_new_password(password, confirm)
        if problem:
            flash(problem, "error")
        else:
            try:
                get_auth_client().update_password(current_access_token(), password)
            except AuthError as exc:
                flash(exc.message, "error")
            else:
                flash("Password updated successfully", "success")
                return redirect(url_for("auth.signin"))

    return render_template("auth/update_password.html")


@auth_bp.route("/signout", methods=["POST"])
def signout():
    access_token = request.cookies.get(current_app.config["ACCESS_COOKIE_NAME"])
    if access_token:
        try:
            get_auth_client().sign_out(access_token)
        except AuthError as exc:
            current_app.logger.info("Remote sign-out failed: %s", exc.message)
    return clear_session_cookies(redirect(url_for("web.home")))
