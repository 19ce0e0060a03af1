# create.py: bootstrap a staff account (can delete requests, post notifications)
from getpass import getpass
from devhelp import create_app
from devhelp.extensions import db
from devhelp.models.user import User


def main():
    app = create_app()
    with app.app_context():
        email = input("Admin email: ").strip().lower()
        name = input("Full name: ").strip()
        password = getpass("Password: ")

        # Check existing
        existing = User.query.filter_by(email=email).first()
        if existing:
            if existing.is_staff:
                print("User with that email is already staff.")
                return
            existing.is_staff = True
            db.session.commit()
            print(f"Existing user {email} promoted to staff.")
            return

        user = User(name=name, email=email, user_type="client", is_staff=True)
        user.set_password(password)
        db.session.add(user)
        db.session.commit()
        print(f"Admin user {email} created successfully.")

if __name__ == "__main__":
    main()
